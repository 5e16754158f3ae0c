"""Text chunking for embedding and retrieval.

Raw text becomes a list of paragraph-aligned chunks bounded by a character
budget (``CHARS_PER_TOKEN * max_tokens``). Chunks under the minimum length
are dropped as noise. Transcript input (a JSON array of ``{content}``
records) is flattened to plain lines first.
"""

import json
import logging
import math
import re
from dataclasses import dataclass

from sourcelens.constants import (
    CHARS_PER_TOKEN,
    INAUDIBLE_MARKERS,
    MAX_TOKENS_PER_CHUNK,
    MIN_CHUNK_LENGTH,
)
from sourcelens.service.models import ContentFormat

logger = logging.getLogger(__name__)

_BLANK_LINES = re.compile(r"\n{3,}")
_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
_INLINE_WHITESPACE = re.compile(r"[ \t\f\v]+")


@dataclass(frozen=True)
class TextSlice:
    """One of several equal-sized character slices of an oversized text."""

    text: str
    part_index: int
    total_parts: int


def flatten_transcript(raw_text: str) -> str:
    """Join the non-empty, audible ``content`` fields of a transcript.

    Args:
        raw_text: JSON-encoded array of records with a ``content`` field

    Returns:
        str: Newline-separated transcript lines, or "" if the payload is not
             a JSON array of records.
    """
    try:
        records = json.loads(raw_text)
    except (json.JSONDecodeError, TypeError):
        logger.warning("⚠️ Transcript content is not valid JSON, treating as empty")
        return ""

    if not isinstance(records, list):
        return ""

    lines = []
    for record in records:
        if not isinstance(record, dict):
            continue
        content = str(record.get("content") or "").strip()
        if not content:
            continue
        if any(marker in content.lower() for marker in INAUDIBLE_MARKERS):
            continue
        lines.append(content)
    return "\n".join(lines)


def normalize_text(text: str) -> str:
    """Collapse line endings, blank-line runs and inline whitespace, then trim.

    Paragraph breaks (blank lines) survive normalization so the splitter can
    still find them.
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _BLANK_LINES.sub("\n\n", text)
    text = _INLINE_WHITESPACE.sub(" ", text)
    text = "\n".join(line.strip() for line in text.split("\n"))
    return text.strip()


def extract_content(raw_text: str, content_format: ContentFormat = ContentFormat.PLAIN) -> str:
    """Return the normalized text for a source in the given format."""
    if ContentFormat(content_format) is ContentFormat.TRANSCRIPT:
        raw_text = flatten_transcript(raw_text)
    return normalize_text(raw_text)


class Chunker:
    """Paragraph-aware splitter with a character budget and a length floor."""

    def __init__(
        self,
        max_tokens: int = MAX_TOKENS_PER_CHUNK,
        min_length: int = MIN_CHUNK_LENGTH,
    ) -> None:
        self.max_chars = max_tokens * CHARS_PER_TOKEN
        self.min_length = min_length

    def split(
        self, raw_text: str, content_format: ContentFormat = ContentFormat.PLAIN
    ) -> list[str]:
        """Split raw text into chunks.

        Args:
            raw_text: Extracted text of a single source
            content_format: PLAIN for text, TRANSCRIPT for a JSON line array

        Returns:
            list[str]: Chunks, each at least ``min_length`` characters long.
                       A single paragraph longer than the budget is kept whole.
        """
        text = extract_content(raw_text, content_format)

        if len(text) < self.min_length:
            return []
        if len(text) <= self.max_chars:
            return [text]

        chunks: list[str] = []
        current = ""
        for segment in _PARAGRAPH_BREAK.split(text):
            segment = segment.strip()
            if not segment:
                continue
            candidate = f"{current}\n\n{segment}" if current else segment
            if current and len(candidate) > self.max_chars:
                self._flush(current, chunks)
                current = segment
            else:
                current = candidate
        self._flush(current, chunks)

        logger.debug(f"Split {len(text)} characters into {len(chunks)} chunks")
        return chunks

    def _flush(self, chunk: str, chunks: list[str]) -> None:
        if len(chunk) >= self.min_length:
            chunks.append(chunk)


def split_oversized(text: str, max_chars: int) -> list[TextSlice]:
    """Split text into equal-length character slices no longer than ``max_chars``.

    Args:
        text: Content that may exceed the budget
        max_chars: Upper bound on each slice length

    Returns:
        list[TextSlice]: A single slice (1 of 1) when the text already fits.
    """
    if max_chars <= 0:
        raise ValueError("max_chars must be positive")
    if len(text) <= max_chars:
        return [TextSlice(text=text, part_index=1, total_parts=1)]

    total_parts = math.ceil(len(text) / max_chars)
    part_length = math.ceil(len(text) / total_parts)
    return [
        TextSlice(
            text=text[i * part_length : (i + 1) * part_length],
            part_index=i + 1,
            total_parts=total_parts,
        )
        for i in range(total_parts)
    ]
