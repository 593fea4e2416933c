# chunking/fixed.py
from __future__ import annotations

import logging
from typing import List

from pydantic import BaseModel, Field

from ..index.schema import Chunk
from ..ingest.clean import normalize_whitespace

logger = logging.getLogger(__name__)

SENTENCE_ENDERS = ".!?\n"
# a window may grow to at most this many times chunk_size to close a code fence
MAX_FENCE_STRETCH = 4


class FixedWindowStrategy(BaseModel):
    name: str = "fixed"
    chunk_size: int = Field(default=1000, gt=0)
    overlap: int = Field(default=200, ge=0)
    split_on_sentence: bool = True
    keep_code_blocks: bool = True


def find_break(text: str, start: int, max_end: int) -> int:
    """
    Pull a window boundary back to a natural break.

    Prefers the last sentence terminator followed by whitespace (or end of
    text), then the last whitespace, then the raw boundary.
    """
    n = len(text)
    for i in range(max_end - 1, start, -1):
        if text[i] in SENTENCE_ENDERS and (i + 1 >= n or text[i + 1].isspace()):
            return i + 1
    for i in range(max_end - 1, start, -1):
        if text[i].isspace():
            return i
    return max_end


def code_block_end(text: str, pos: int) -> int:
    """End of the ``` fence enclosing `pos`, or -1 when `pos` is outside a fence."""
    if text.count("```", 0, pos) % 2 == 0:
        return -1
    close = text.find("```", pos)
    return -1 if close < 0 else close + 3


def detect_content_type(text: str) -> str:
    if "```" in text:
        return "code"
    stripped = text.strip()
    if "sudo " in text or "apt " in text or "$ " in text or stripped.startswith("#"):
        return "command"
    lines = [ln.strip() for ln in text.split("\n")]
    list_lines = sum(
        1
        for ln in lines
        if ln.startswith(("- ", "* ", "+ "))
        or (len(ln) > 2 and ln[0].isdigit() and ln[1] == ".")
    )
    if list_lines > 2:
        return "list"
    if any(ln.startswith("#") for ln in lines):
        return "structured"
    return "prose"


def chunk_fixed(text: str, strategy: FixedWindowStrategy | None = None) -> List[Chunk]:
    """
    Split `text` into overlapping windows.

    Offsets refer to the whitespace-normalized text. Start offsets are
    strictly increasing and consecutive windows leave no gap.
    """
    strategy = strategy or FixedWindowStrategy()
    text = normalize_whitespace(text)
    if not text:
        return []

    n = len(text)
    size, overlap = strategy.chunk_size, strategy.overlap
    chunks: List[Chunk] = []
    start = 0
    while start < n:
        end = min(start + size, n)
        fence_end = code_block_end(text, end) if strategy.keep_code_blocks and end < n else -1
        if end < fence_end < n and fence_end - start <= size * MAX_FENCE_STRETCH:
            end = fence_end
        elif strategy.split_on_sentence and end < n:
            bp = find_break(text, start, end)
            if bp > start:
                end = bp

        piece = text[start:end].strip()
        if piece:
            chunks.append(
                Chunk(
                    text=piece,
                    index=len(chunks),
                    start=start,
                    end=end,
                    metadata={
                        "char_count": len(piece),
                        "word_count": len(piece.split()),
                        "content_type": detect_content_type(piece),
                    },
                )
            )

        if end >= n:
            break
        nxt = end - overlap
        if nxt <= start:
            nxt = end
        start = nxt

    logger.debug("fixed-window chunking produced %d chunks from %d chars", len(chunks), n)
    return chunks
