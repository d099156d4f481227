"""Lightweight markup of answer text for display."""

import html
import re

_BOLD = re.compile(r"\*\*(.+?)\*\*", re.DOTALL)
_ITALIC = re.compile(r"(?<![*\w])\*(?!\s)([^*\n]+?)(?<!\s)\*(?![*\w])")
_CODE = re.compile(r"`([^`\n]+)`")
# Escaped text holds no raw "<"; trailing sentence punctuation stays outside.
_URL = re.compile(r"https?://[^\s<\"']+?(?=[.,;:!?)]*(?:\s|$|<))")


def _link(match: re.Match[str]) -> str:
    url = match.group(0)
    return f'<a href="{url}" target="_blank" rel="noopener">{url}</a>'


def format_message(text: str) -> str:
    """Convert answer text to safe display HTML.

    The text is HTML-escaped first, then ``**bold**``, ``*italic*``,
    ```code``` and bare ``http(s)://`` URLs are turned into markup and
    newlines into ``<br>``.

    Returns:
        An HTML fragment wrapped in a single ``<p>`` element.
    """
    escaped = html.escape(text, quote=False)
    formatted = _CODE.sub(r"<code>\1</code>", escaped)
    formatted = _BOLD.sub(r"<strong>\1</strong>", formatted)
    formatted = _ITALIC.sub(r"<em>\1</em>", formatted)
    formatted = _URL.sub(_link, formatted)
    formatted = formatted.replace("\n", "<br>")
    return f"<p>{formatted}</p>"
