"""Render an AugmentResult to json / md / txt files for `docrag query --out/--save`."""
from __future__ import annotations

import json
import re
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional

from ..retrieve.engine import AugmentResult

DEFAULT_SAVE_DIR = "outputs"

_NON_WORD = re.compile(r"[^a-z0-9]+")


def slugify(question: str, max_len: int = 60) -> str:
    slug = _NON_WORD.sub("-", question.lower())[:max_len].strip("-")
    return slug or "query"


def infer_format(out_path: Optional[str], fmt: Optional[str]) -> str:
    """Explicit format wins, then the file extension, then json."""
    if fmt:
        return fmt.lower()
    ext = Path(out_path).suffix.lower().lstrip(".") if out_path else ""
    return ext if ext in RENDERERS else "json"


def target_path(question: str, fmt: str, out_path: Optional[str], save_dir: Optional[str]) -> Path:
    if out_path:
        target = Path(out_path)
    else:
        stamp = time.strftime("%Y%m%d_%H%M%S")
        target = Path(save_dir or DEFAULT_SAVE_DIR) / f"{stamp}_{slugify(question)}.{fmt}"
    target.parent.mkdir(parents=True, exist_ok=True)
    return target


def as_json(question: str, res: AugmentResult) -> str:
    return json.dumps({"question": question, **res.model_dump()}, ensure_ascii=False, indent=2)


def as_markdown(question: str, res: AugmentResult) -> str:
    out: List[str] = [f"# {question}", "", f"_augmented: {str(res.augmented).lower()} ({res.reason})_", ""]
    if res.documents_used:
        out.append("## Documents")
        out.extend(f"- `{d.title}` | score {d.score:.3f}" for d in res.documents_used)
        out.append("")
    out += ["## Prompt", "```text", res.prompt, "```"]
    return "\n".join(out) + "\n"


def as_text(question: str, res: AugmentResult) -> str:
    out: List[str] = [f"QUESTION: {question}", f"AUGMENTED: {res.augmented} ({res.reason})", ""]
    if res.documents_used:
        out.append("DOCUMENTS:")
        out.extend(f"- {d.title} | {d.score:.3f}" for d in res.documents_used)
        out.append("")
    out.append(res.prompt)
    return "\n".join(out) + "\n"


RENDERERS: Dict[str, Callable[[str, AugmentResult], str]] = {
    "json": as_json,
    "md": as_markdown,
    "txt": as_text,
}


def write_output(
    question: str,
    res: AugmentResult,
    out_path: Optional[str] = None,
    fmt: Optional[str] = None,
    save_dir: Optional[str] = None,
) -> Path:
    fmt = infer_format(out_path, fmt)
    target = target_path(question, fmt, out_path, save_dir)
    target.write_text(RENDERERS[fmt](question, res), encoding="utf-8")
    return target
