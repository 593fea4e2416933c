from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field

from ..index.schema import Chunk
from ..ingest.clean import collapsed_positions, normalize_lines
from .fixed import FixedWindowStrategy, chunk_fixed

logger = logging.getLogger(__name__)

_ATX_RE = re.compile(r"^(#{1,6})\s+(.*?)\s*#*\s*$")
_SETEXT_RE = re.compile(r"^(={3,}|-{3,})$")
LIST_RE = re.compile(r"^(?:[-*+]\s|\d+[.)]\s)")

MAX_HEADER_LEN = 100
SHORT_HEADER_LEN = 50


class HeaderAwareStrategy(BaseModel):
    name: str = "headers"
    chunk_size: int = Field(default=512, gt=0)
    overlap: int = Field(default=128, ge=0)
    min_chunk_size: int = Field(default=100, ge=0)


def atx_level(line: str) -> int:
    m = _ATX_RE.match(line)
    return len(m.group(1)) if m else 0


def is_setext_underline(line: str) -> bool:
    return bool(_SETEXT_RE.match(line.strip()))


def is_mostly_upper(s: str) -> bool:
    letters = [c for c in s if c.isalpha()]
    if len(letters) < 3:
        return False
    upper = sum(1 for c in letters if c.isupper())
    return upper / len(letters) > 0.8


def looks_like_header(line: str, next_line: str) -> bool:
    """Heuristic header test for plain text (no Markdown markup)."""
    if not line or len(line) >= MAX_HEADER_LEN:
        return False
    if not next_line or is_setext_underline(next_line):
        return False
    if LIST_RE.match(line) or line.startswith("```"):
        return False
    return (
        line.endswith(":")
        or (len(line) < SHORT_HEADER_LEN and "." not in line)
        or is_mostly_upper(line)
    )


def classify_lines(lines: List[str]) -> List[Tuple[str, str, int, int]]:
    """
    Label each non-blank line as ("header", text, level, i) or ("body", text, 0, i),
    where i is the line's position in `lines`.

    Setext underlines are consumed together with the line they underline.
    """
    items: List[Tuple[str, str, int, int]] = []
    i = 0
    while i < len(lines):
        ln = lines[i]
        if not ln:
            i += 1
            continue
        nxt = lines[i + 1] if i + 1 < len(lines) else ""
        level = atx_level(ln)
        if level:
            items.append(("header", ln, level, i))
        elif nxt and is_setext_underline(nxt) and not is_setext_underline(ln):
            items.append(("header", ln, 2 if nxt.startswith("-") else 1, i))
            i += 2
            continue
        elif looks_like_header(ln, nxt):
            items.append(("header", ln, 3, i))
        else:
            items.append(("body", ln, 0, i))
        i += 1
    return items


def header_title(line: str) -> str:
    m = _ATX_RE.match(line)
    return m.group(2).strip() if m else line.strip()


def line_offsets(lines: List[str]) -> List[int]:
    """Start of each line in "\\n".join(lines)."""
    offsets: List[int] = []
    pos = 0
    for ln in lines:
        offsets.append(pos)
        pos += len(ln) + 1
    return offsets


@dataclass
class _Section:
    source: str = ""
    titles: List[str] = field(default_factory=list)
    level: int = 0
    start: Optional[int] = None
    end: int = 0
    body: List[str] = field(default_factory=list)
    body_start: Optional[int] = None

    @property
    def header(self) -> str:
        return " > ".join(self.titles)

    @property
    def text(self) -> str:
        return self.source[self.start or 0:self.end]

    @property
    def body_text(self) -> str:
        return self.source[self.body_start or 0:self.end]


def split_sections(text: str) -> List[_Section]:
    """
    Group lines into header/body sections.

    Offsets index the line-normalized text, blank lines and Setext
    underlines included, so `text` of a section is an exact slice of it.
    """
    lines = normalize_lines(text)
    offsets = line_offsets(lines)
    norm = "\n".join(lines)
    sections: List[_Section] = []
    cur = _Section(source=norm)
    for kind, line, level, i in classify_lines(lines):
        offset = offsets[i]
        if kind == "header":
            if cur.body:
                sections.append(cur)
                cur = _Section(source=norm)
            # consecutive headers without a body between them form a path
            cur.titles.append(header_title(line))
            cur.level = level
            if cur.start is None:
                cur.start = offset
            continue
        if cur.start is None:
            cur.start = offset
        if cur.body_start is None:
            cur.body_start = offset
        cur.body.append(line)
        cur.end = offset + len(line)
    if cur.body:
        sections.append(cur)
    elif cur.titles:
        logger.debug("dropping trailing header without body: %r", cur.header)
    return sections


def _header_meta(sec: _Section) -> dict:
    return {
        "has_header": bool(sec.titles),
        "header": sec.header,
        "header_level": sec.level,
    }


def _source_span(body: str, positions: List[int], start: int, end: int) -> Tuple[int, int]:
    """Map a window over the collapsed body back to a trimmed span of `body`."""
    while start < end and body[positions[start]].isspace():
        start += 1
    while end > start and body[positions[end - 1]].isspace():
        end -= 1
    return positions[start], positions[end - 1] + 1


def chunk_with_headers(text: str, strategy: HeaderAwareStrategy | None = None) -> List[Chunk]:
    """
    Section-aware chunking for structured documents.

    A section that fits the window becomes one chunk. A section shorter than
    `min_chunk_size` is kept whole and flagged `undersized`. Larger sections
    have their body re-windowed; every piece inherits the section header and
    pieces below the minimum size are dropped. Chunk text is always the
    slice of the line-normalized text its offsets point at.
    """
    strategy = strategy or HeaderAwareStrategy()
    window = FixedWindowStrategy(
        chunk_size=strategy.chunk_size,
        overlap=strategy.overlap,
        split_on_sentence=True,
    )

    chunks: List[Chunk] = []
    for sec in split_sections(text):
        sec_text = sec.text
        start = sec.start or 0
        if len(sec_text) <= strategy.chunk_size:
            meta = _header_meta(sec)
            meta["char_count"] = len(sec_text)
            if len(sec_text) < strategy.min_chunk_size:
                meta["undersized"] = True
            chunks.append(
                Chunk(
                    text=sec_text,
                    index=len(chunks),
                    start=start,
                    end=start + len(sec_text),
                    metadata=meta,
                )
            )
            continue

        body = sec.body_text
        base = sec.body_start or 0
        positions = collapsed_positions(body)
        for sub in chunk_fixed(body, window):
            if len(sub.text) < strategy.min_chunk_size:
                logger.debug(
                    "dropping %d-char tail under header %r", len(sub.text), sec.header
                )
                continue
            lo, hi = _source_span(body, positions, sub.start, sub.end)
            piece = body[lo:hi]
            chunks.append(
                Chunk(
                    text=piece,
                    index=len(chunks),
                    start=base + lo,
                    end=base + hi,
                    metadata={**sub.metadata, "char_count": len(piece), **_header_meta(sec)},
                )
            )
    return chunks
