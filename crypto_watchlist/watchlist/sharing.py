"""
Share tokens and file import/export for watchlists.

Share tokens are convenience links, so a bad token silently decodes to an
empty list. File imports are deliberate user actions, so a bad file raises
WatchlistImportError with a message meant for the user.
"""

import base64
import binascii
import json
import logging
from collections.abc import Sequence
from datetime import date
from typing import Final
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

SHARE_QUERY_PARAM: Final[str] = "watchlist"
EXPORT_FILENAME_PREFIX: Final[str] = "crypto-watchlist"

ERROR_NOT_AN_ARRAY: Final[str] = (
    "Invalid format: Expected an array of cryptocurrency IDs"
)
ERROR_NON_STRING_ITEM: Final[str] = "Invalid format: All items must be strings"

logger = logging.getLogger(__name__)


class WatchlistImportError(ValueError):
    """Raised when an imported watchlist file is rejected."""


def encode_watchlist(ids: Sequence[str]) -> str:
    """Serialize ids to compact JSON and then to base64."""
    payload = json.dumps(list(ids), separators=(",", ":"))
    return base64.b64encode(payload.encode("utf-8")).decode("ascii")


def decode_watchlist(token: str) -> list[str]:
    """Inverse of encode_watchlist. Any malformed token decodes to []."""
    try:
        payload = base64.b64decode(token, validate=True).decode("utf-8")
        value = json.loads(payload)
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        logger.warning(f"Ignoring malformed share token: {e}")
        return []

    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        logger.warning("Ignoring share token that is not a list of ids")
        return []
    return value


def build_share_url(base_url: str, ids: Sequence[str]) -> str:
    """Link that seeds a watchlist when opened."""
    token = quote(encode_watchlist(ids), safe="")
    return f"{base_url.rstrip('/')}/?{SHARE_QUERY_PARAM}={token}"


def consume_share_token(url: str) -> tuple[list[str], str | None]:
    """
    Extract a shared watchlist from a URL.

    Returns:
        The decoded ids and the URL with the share parameter removed, or
        ([], None) when the URL carries no share parameter.
    """
    parts = urlsplit(url)
    params = parse_qsl(parts.query, keep_blank_values=True)
    tokens = [value for name, value in params if name == SHARE_QUERY_PARAM]
    if not tokens:
        return [], None

    kept = [(name, value) for name, value in params if name != SHARE_QUERY_PARAM]
    cleaned = urlunsplit(parts._replace(query=urlencode(kept)))
    # unquoted links turn base64 '+' into spaces
    return decode_watchlist(tokens[0].replace(" ", "+")), cleaned


def parse_import(content: str | bytes) -> list[str]:
    """
    Validate an imported watchlist file.

    Raises:
        WatchlistImportError: If the content is not JSON, is not an array, or
            holds anything other than strings. Nothing is applied in that case.
    """
    try:
        value = json.loads(content)
    except ValueError as e:
        raise WatchlistImportError(f"Failed to import watchlist: {e}") from e

    if not isinstance(value, list):
        raise WatchlistImportError(ERROR_NOT_AN_ARRAY)

    if not all(isinstance(item, str) for item in value):
        raise WatchlistImportError(ERROR_NON_STRING_ITEM)

    return value


def export_watchlist(ids: Sequence[str]) -> str:
    """Pretty-printed JSON array suitable for download."""
    return json.dumps(list(ids), indent=2)


def export_filename(on: date | None = None) -> str:
    return f"{EXPORT_FILENAME_PREFIX}-{(on or date.today()).isoformat()}.json"
