import pytest

from docrag.index.schema import SearchResult
from docrag.retrieve.fuse import hybrid_fuse
from docrag.retrieve.keywords import extract_keywords, keyword_score
from docrag.retrieve.rerank import length_penalty, positional_decay, rerank

LONG_TAIL = " More details follow so the chunk is not penalized for being short at all."


def _r(id, score, text, doc="a"):
    return SearchResult(id=id, score=score, payload={"text": text, "document_id": doc, "title": doc})


def test_extract_keywords_drops_stop_words_and_short_tokens():
    assert extract_keywords("What is the status of the overdue Invoice?") == ["status", "overdue", "invoice"]
    assert extract_keywords("invoice invoice INVOICE") == ["invoice"]
    assert extract_keywords("") == []


def test_keywords_match_case_insensitively_without_phrase():
    score, matched, phrase = keyword_score("Overdue invoices must be flagged", ["invoice", "overdue"])
    assert matched == ["invoice", "overdue"]
    assert score == 1.0
    assert phrase is False


def test_partial_match_scores_fraction():
    score, matched, phrase = keyword_score("the invoice was paid", ["invoice", "overdue"])
    assert score == 0.5 and matched == ["invoice"] and not phrase
    assert keyword_score("anything", []) == (0.0, [], False)


def test_phrase_outranks_scattered_keywords():
    phrase = _r("p", 0.6, "To reset password open the account settings." + LONG_TAIL)
    scattered = _r("s", 0.6, "The password field lets you reset it later." + LONG_TAIL)
    fused = hybrid_fuse([scattered, phrase], "reset password")
    assert [h.result.id for h in fused] == ["p", "s"]
    assert fused[0].phrase_match and not fused[1].phrase_match
    assert fused[0].keyword_score == fused[1].keyword_score == 1.0
    assert fused[0].combined_score > fused[1].combined_score
    assert fused[0].combined_score == pytest.approx(0.6 * 0.7 + 0.3 * 1.5)


def test_zero_weights_fall_back_to_defaults():
    fused = hybrid_fuse([_r("x", 0.5, "nothing relevant")], "invoice", 0.0, 0.0)
    assert fused[0].combined_score == pytest.approx(0.35)


def test_positional_decay_and_length_penalty():
    assert positional_decay(0, 5) == 1.0
    assert positional_decay(4, 5) == pytest.approx(0.9)
    assert positional_decay(0, 1) == 1.0
    assert length_penalty("short") == 0.8
    assert length_penalty("x" * 100) == 1.0


def test_rerank_prefers_longer_chunk_when_close():
    short = _r("short", 0.8, "tiny")
    long = _r("long", 0.75, "x" * 150)
    fused = hybrid_fuse([short, long], "unrelated", 1.0, 0.0)
    ranked = rerank(fused, top_k=5)
    assert [h.result.id for h, _ in ranked] == ["long", "short"]
    assert ranked[0][1] == pytest.approx(0.75 * 0.9)
    assert len(rerank(fused, top_k=1)) == 1
    assert rerank(fused, top_k=0) == []
