import json
import logging

from docrag.ingest.clean import collapsed_positions, normalize_lines, normalize_whitespace
from docrag.logging_utils import _JsonFormatter, _PlainFormatter, _coerce_level


def _record(msg, **extra):
    rec = logging.makeLogRecord({"name": "docrag.test", "levelname": "INFO", "msg": msg})
    for k, v in extra.items():
        setattr(rec, k, v)
    return rec


def test_json_formatter_includes_extras():
    line = _JsonFormatter().format(_record("hello %s" % "world", document_id="a.md"))
    data = json.loads(line)
    assert data["msg"] == "hello world"
    assert data["logger"] == "docrag.test"
    assert data["document_id"] == "a.md"


def test_plain_formatter_appends_extras():
    line = _PlainFormatter().format(_record("indexed", chunks=3))
    assert line.endswith("indexed chunks=3")


def test_coerce_level():
    assert _coerce_level("debug") == logging.DEBUG
    assert _coerce_level("10") == 10
    assert _coerce_level("nonsense") == logging.INFO
    assert _coerce_level(None) == logging.INFO


def test_normalize_lines_keeps_paragraph_breaks():
    text = "Title\r\n\r\n•  first   item\n  second line  "
    assert normalize_lines(text) == ["Title", "", "- first item", "second line"]
    assert normalize_whitespace("  a \t b\n") == "a b"


def test_collapsed_positions_map_back_into_the_source():
    src = "  alpha \n\n beta\tgamma  "
    flat = normalize_whitespace(src)
    pos = collapsed_positions(src)
    assert len(pos) == len(flat)
    assert "".join(" " if src[i].isspace() else src[i] for i in pos) == flat
