"""Free-text sanitisation for user-supplied justifications."""
import html
import re

_TAG_RE = re.compile(r"<[^>]*>")
_SCRIPT_RE = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_WS_RE = re.compile(r"\s+")


def sanitize_text(value: str | None, max_length: int | None = None) -> str:
    """Strip markup, unescape entities, collapse whitespace and trim.

    Script/style blocks are dropped with their content; other tags are
    removed but their text is kept. Length limits apply after cleaning.
    """
    if not value:
        return ""
    text = _SCRIPT_RE.sub(" ", value)
    text = _TAG_RE.sub(" ", text)
    text = html.unescape(text)
    text = _WS_RE.sub(" ", text).strip()
    if max_length is not None:
        text = text[:max_length].rstrip()
    return text
