import hashlib
import math
import re
import sys
from pathlib import Path

import pytest

# Repo root = one level above tests/
REPO_ROOT = Path(__file__).resolve().parents[1]

# Ensure repo root is on sys.path so `import cli` and `import docrag` work.
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from docrag.config import MappingSettings, ProviderConfig  # noqa: E402
from docrag.embed.base import Embedder  # noqa: E402
from docrag.embed.factory import EmbedderCache  # noqa: E402
from docrag.index.base import VectorIndex  # noqa: E402
from docrag.index.schema import PointFilter, SearchResult  # noqa: E402

DIM = 16


class HashEmbedder(Embedder):
    """Deterministic bag-of-words vectors; texts sharing words land close together."""

    name = "hash"

    def __init__(self, dim: int = DIM):
        self.dim = dim
        self.calls = []

    def embed(self, model, text, timeout=None):
        self.calls.append((model, text, timeout))
        vec = [0.0] * self.dim
        for w in re.findall(r"\w+", text.lower()):
            h = int(hashlib.md5(w.encode("utf-8")).hexdigest(), 16)
            vec[h % self.dim] += 1.0
        norm = math.sqrt(sum(x * x for x in vec)) or 1.0
        return [x / norm for x in vec]

    def list_models(self):
        return ["hash-model"]


class FakeEmbedders(EmbedderCache):
    def __init__(self, embedder):
        super().__init__()
        self.embedder = embedder

    def get(self, name, pcfg):
        return self.embedder


def _matches(payload, f):
    if f is None or f.is_empty():
        return True
    if any(payload.get(m.key) != m.value for m in f.must):
        return False
    if f.should and not any(payload.get(m.key) == m.value for m in f.should):
        return False
    return True


class MemoryIndex(VectorIndex):
    """In-process cosine index with the same contract as the real backends."""

    def __init__(self, collection="documents"):
        super().__init__(collection)
        self.size = None
        self.points = {}
        self.ensure_calls = 0

    def ensure_collection(self, name, vector_size, distance="cosine"):
        self.ensure_calls += 1
        if self.size is not None and self.size != vector_size:
            from docrag.errors import VectorIndexError

            raise VectorIndexError("size mismatch")
        self.size = vector_size
        self.collection = name

    def upsert(self, points):
        for p in points:
            self.points[p.id] = (list(p.vector), dict(p.payload))

    def search(self, vector, limit, filter=None):
        out = []
        for pid, (vec, payload) in self.points.items():
            if _matches(payload, filter):
                score = sum(a * b for a, b in zip(vector, vec))
                out.append(SearchResult(id=pid, score=score, payload=payload))
        out.sort(key=lambda r: r.score, reverse=True)
        return out[:limit]

    def delete_by_filter(self, filter):
        filter = self._require_filter(filter)
        gone = [pid for pid, (_, payload) in self.points.items() if _matches(payload, filter)]
        for pid in gone:
            del self.points[pid]
        return len(gone)

    def count(self, filter=None):
        return sum(1 for _, payload in self.points.values() if _matches(payload, filter))


class StubIndex(MemoryIndex):
    """Returns canned search results, whatever the query vector."""

    def __init__(self, results):
        super().__init__()
        self.results = results
        self.searches = []

    def search(self, vector, limit, filter=None):
        self.searches.append((limit, filter))
        return list(self.results)


@pytest.fixture
def embedder():
    return HashEmbedder()


@pytest.fixture
def providers():
    return {"fake": ProviderConfig(type="fastembed")}


@pytest.fixture
def settings():
    return MappingSettings(
        {
            "embedding_provider": "fake",
            "embedding_model": "hash-model",
            "embedding_vector_size": DIM,
        }
    )
