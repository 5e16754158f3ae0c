"""Deterministic reformatting of streamed model output.

Model text arrives in arbitrary fragments. ``StreamFormatter`` holds back
the unsettled tail of the stream so the result is the same no matter where
the provider split its tokens.
"""

import re

_SENTENCE_END = re.compile(r"(?<!\d)([.!?])\s+")
_COLON = re.compile(r":\s+")
_BULLET = re.compile(r"[ \t]+(?=[-*•] )")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")


def format_text(text: str) -> str:
    """Break paragraphs after sentences and colons, and lines before bullets.

    Numbered-list markers ("1. ") are left alone.
    """
    text = _SENTENCE_END.sub(r"\1\n\n", text)
    text = _COLON.sub(":\n", text)
    text = _BULLET.sub("\n", text)
    return _EXCESS_NEWLINES.sub("\n\n", text)


class StreamFormatter:
    """Apply ``format_text`` incrementally across fragment boundaries.

    Text is released only up to the last point between two alphanumeric
    characters, where no formatting rule can match across the cut.
    """

    def __init__(self) -> None:
        self._pending = ""

    def feed(self, fragment: str) -> str:
        """Add a fragment and return whatever formatted text is now settled."""
        self._pending += fragment
        cut = self._safe_cut(self._pending)
        if cut <= 0:
            return ""
        ready, self._pending = self._pending[:cut], self._pending[cut:]
        return format_text(ready)

    def flush(self) -> str:
        """Return the formatted remainder at end of stream."""
        ready, self._pending = self._pending, ""
        return format_text(ready)

    @staticmethod
    def _safe_cut(text: str) -> int:
        for i in range(len(text) - 1, 0, -1):
            if text[i].isalnum() and text[i - 1].isalnum():
                return i
        return 0
