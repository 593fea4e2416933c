import re
from typing import List

BULLETS = ["•", "◦", "‣", "▪", "▸", "►", "●", "○", "■", "□", "·"]

_WS_RUN = re.compile(r"\s+")
_BULLET_RE = re.compile(r"^(?:%s)\s*" % "|".join(re.escape(b) for b in BULLETS))


def normalize_whitespace(s: str) -> str:
    """Collapse every whitespace run to one space and trim both ends."""
    if not s:
        return ""
    return _WS_RUN.sub(" ", s).strip()


def collapsed_positions(s: str) -> List[int]:
    """Index in `s` of every character of normalize_whitespace(s)."""
    out: List[int] = []
    in_ws = True
    for i, ch in enumerate(s):
        if not ch.isspace():
            out.append(i)
            in_ws = False
        elif not in_ws:
            out.append(i)
            in_ws = True
    if out and s[out[-1]].isspace():
        out.pop()
    return out


def normalize_lines(s: str) -> List[str]:
    """
    Line-level normalization for structure-aware processing.

    Line endings are unified, non-breaking spaces become spaces, leading
    bullet glyphs become "- ", and each line is trimmed with inner whitespace
    runs collapsed. Blank lines are kept as "" so callers can see paragraph
    breaks.
    """
    if not s:
        return []
    s = s.replace("\r\n", "\n").replace("\r", "\n").replace("\u00a0", " ")
    out: List[str] = []
    for ln in s.split("\n"):
        ln = normalize_whitespace(ln)
        if ln:
            ln = _BULLET_RE.sub("- ", ln)
        out.append(ln)
    return out
