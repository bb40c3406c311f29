"""Text helpers for Messenger replies.

Messenger renders plain text only, so Markdown bold is mapped onto the
Unicode mathematical bold block, and long bodies are cut into chunks
that fit the Send API's per-message limit.
"""

import re
from typing import List

_BOLD_SPAN = re.compile(r"\*\*(.+?)\*\*")

# Offsets into the Mathematical Alphanumeric Symbols block
_BOLD_UPPER = 0x1D400
_BOLD_LOWER = 0x1D41A
_BOLD_DIGIT = 0x1D7CE


def to_bold(text: str) -> str:
    """Map ASCII letters and digits to their Unicode bold forms."""
    out = []
    for ch in text:
        if "a" <= ch <= "z":
            out.append(chr(_BOLD_LOWER + ord(ch) - ord("a")))
        elif "A" <= ch <= "Z":
            out.append(chr(_BOLD_UPPER + ord(ch) - ord("A")))
        elif "0" <= ch <= "9":
            out.append(chr(_BOLD_DIGIT + ord(ch) - ord("0")))
        else:
            out.append(ch)
    return "".join(out)


def markdown_bold_to_unicode(text: str) -> str:
    """Replace ``**span**`` Markdown bold with Unicode bold characters."""
    return _BOLD_SPAN.sub(lambda m: to_bold(m.group(1)), text)


def split_text(text: str, limit: int) -> List[str]:
    """Split *text* into ordered chunks of at most *limit* characters.

    Prefers to break after a newline, then after a space, as long as
    the break point is in the second half of the window; otherwise cuts
    hard. Nothing is stripped, so ``"".join(chunks) == text``.
    """
    if limit < 1:
        raise ValueError("limit must be positive")
    chunks: List[str] = []
    start = 0
    length = len(text)
    while length - start > limit:
        window = text[start:start + limit]
        cut = window.rfind("\n") + 1
        if cut <= limit // 2:
            cut = window.rfind(" ") + 1
        if cut <= limit // 2:
            cut = limit
        chunks.append(text[start:start + cut])
        start += cut
    if start < length:
        chunks.append(text[start:])
    return chunks


def truncate(text: str, limit: int, marker: str) -> str:
    """Cut *text* to *limit* characters, ending with *marker* when cut."""
    if len(text) <= limit:
        return text
    return text[: max(0, limit - len(marker))] + marker
