"""
Allowlist sanitizer for provider-supplied coin descriptions.

Descriptions arrive as HTML written by third parties and are rendered as
markup by the front end. Only a handful of formatting tags and http(s) links
survive; everything else is dropped and all text is escaped.
"""

from html import escape
from html.parser import HTMLParser
from typing import Final

ALLOWED_TAGS: Final[frozenset[str]] = frozenset(
    {"a", "b", "br", "em", "i", "li", "ol", "p", "strong", "ul"}
)
VOID_TAGS: Final[frozenset[str]] = frozenset({"br"})
DROP_CONTENT_TAGS: Final[frozenset[str]] = frozenset({"script", "style"})
SAFE_URL_SCHEMES: Final[tuple[str, ...]] = ("http://", "https://")


class _DescriptionSanitizer(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.parts: list[str] = []
        self._open: list[str] = []
        self._skip_depth = 0

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag in DROP_CONTENT_TAGS:
            self._skip_depth += 1
            return
        if self._skip_depth or tag not in ALLOWED_TAGS:
            return

        if tag == "a":
            href = dict(attrs).get("href") or ""
            if not href.lower().startswith(SAFE_URL_SCHEMES):
                return
            self.parts.append(
                f'<a href="{escape(href)}" target="_blank" rel="noopener noreferrer">'
            )
        else:
            self.parts.append(f"<{tag}>")

        if tag not in VOID_TAGS:
            self._open.append(tag)

    def handle_startendtag(
        self, tag: str, attrs: list[tuple[str, str | None]]
    ) -> None:
        if tag in VOID_TAGS and not self._skip_depth:
            self.parts.append(f"<{tag}>")

    def handle_endtag(self, tag: str) -> None:
        if tag in DROP_CONTENT_TAGS:
            self._skip_depth = max(0, self._skip_depth - 1)
            return
        if self._skip_depth or tag not in self._open:
            return
        # close anything left open inside this element
        while self._open:
            current = self._open.pop()
            self.parts.append(f"</{current}>")
            if current == tag:
                break

    def handle_data(self, data: str) -> None:
        if not self._skip_depth:
            self.parts.append(escape(data, quote=False))

    def result(self) -> str:
        self.close()
        closing = [f"</{tag}>" for tag in reversed(self._open)]
        return "".join(self.parts + closing)


def sanitize_description(html: str | None) -> str:
    """Return `html` reduced to the allowed tags, or "" for empty input."""
    if not html:
        return ""
    sanitizer = _DescriptionSanitizer()
    sanitizer.feed(html)
    return sanitizer.result()
