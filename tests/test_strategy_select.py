import pytest

from docrag.chunking.fixed import FixedWindowStrategy
from docrag.chunking.headers import HeaderAwareStrategy
from docrag.chunking.segmenter import segment, select_strategy
from docrag.chunking.select import StructureScorer

STRUCTURED = """# Setup
Short line one here.
- item one
- item two
## Usage
- item three
Another short line.
"""

PROSE = "This is a long paragraph about nothing in particular, written as plain prose. " * 20


def test_structured_document_scores_above_threshold():
    report = StructureScorer().score("Install Guide", STRUCTURED)
    assert report.header_lines == 2
    assert report.total_lines == 7
    assert set(report.signals) == {"doc_title", "dense_headers", "lists", "short_lines"}
    assert report.score == 8
    assert report.use_headers


def test_prose_scores_zero():
    report = StructureScorer().score("notes", PROSE)
    assert report.score == 0
    assert not report.use_headers


def test_code_lines_count_fences_and_indents():
    text = "Example\n```\n    a = 1\n    b = 2\n    c = 3\n    d = 4\n```\n"
    assert StructureScorer.code_lines(text.split("\n")) == 6
    assert "code_blocks" in StructureScorer().score("x", text).signals


def test_many_headers_signal():
    text = "\n".join(f"# Part {i}\nSome body text for part {i}." for i in range(7))
    report = StructureScorer().score("x", text)
    assert report.header_lines == 7
    assert "many_headers" in report.signals


def test_empty_text_scores_nothing():
    report = StructureScorer().score("Guide", "")
    assert report.score == 0 and report.total_lines == 0


def test_threshold_is_tunable():
    assert StructureScorer(threshold=1).score("x", "short").use_headers
    assert not StructureScorer().score("x", "short").use_headers


def test_select_strategy_uses_given_instances():
    fixed = FixedWindowStrategy(chunk_size=300, overlap=30)
    headers = HeaderAwareStrategy(chunk_size=400)
    chosen, report = select_strategy("Install Guide", STRUCTURED, fixed=fixed, headers=headers)
    assert chosen is headers and report.use_headers
    chosen, _ = select_strategy("notes", PROSE, fixed=fixed, headers=headers)
    assert chosen is fixed


def test_segment_rejects_unknown_strategy():
    with pytest.raises(TypeError):
        segment("text", strategy="fixed")
