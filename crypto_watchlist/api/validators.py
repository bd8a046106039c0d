"""
Custom validators for API parameters.
"""

import re
from typing import Final

from fastapi import HTTPException

from ..shared.charts import TIMEFRAMES
from .models import ErrorResponse

ERROR_INVALID_COIN_ID: Final[str] = "invalid_coin_id"
ERROR_INVALID_TIMEFRAME: Final[str] = "invalid_timeframe"

COIN_ID_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
MAX_COIN_ID_LENGTH: Final[int] = 128


def validate_coin_id(coin_id: str) -> str:
    """
    Validate a provider coin identifier.

    Ids are interpolated into provider URL paths, so anything beyond
    letters, digits, dots, dashes and underscores is rejected.

    Raises:
        HTTPException: 422 when the id is malformed
    """
    if len(coin_id) > MAX_COIN_ID_LENGTH or not COIN_ID_PATTERN.match(coin_id):
        raise HTTPException(
            status_code=422,
            detail=ErrorResponse(
                error=ERROR_INVALID_COIN_ID,
                message=f"'{coin_id}' is not a valid coin identifier",
            ).model_dump(),
        )
    return coin_id


def validate_timeframe(timeframe: str) -> str:
    """Normalize a chart timeframe label such as '7d' to '7D'."""
    label = timeframe.upper()
    if label not in TIMEFRAMES:
        raise HTTPException(
            status_code=422,
            detail=ErrorResponse(
                error=ERROR_INVALID_TIMEFRAME,
                message=f"Unknown timeframe '{timeframe}'. "
                f"Supported timeframes: {', '.join(TIMEFRAMES)}",
            ).model_dump(),
        )
    return label
