"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from recall.config import RecallConfig
from recall.db.connection import Database
from recall.db.schema import initialize
from recall.db.vectors import check_vector
from recall.errors import EmbeddingBackendError

DIMS = 4


class FakeEmbedder:
    """Deterministic EmbeddingClient: per-text vectors, optional scripted failures."""

    def __init__(self, dimensions: int = DIMS, failures: int = 0, error: Exception | None = None):
        self.dimensions = dimensions
        self.vectors: dict[str, list[float]] = {}
        self.default = [1.0] + [0.0] * (dimensions - 1)
        self.failures = failures
        self.error = error or EmbeddingBackendError("backend unavailable")
        self.calls: list[str] = []

    def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.failures:
            self.failures -= 1
            raise self.error
        return check_vector(self.vectors.get(text, self.default), self.dimensions)


class FakeLLM:
    """LanguageModelClient that streams canned fragments or raises."""

    def __init__(self, fragments=("The team ", "agreed to ship."), error: Exception | None = None):
        self.fragments = list(fragments)
        self.error = error
        self.calls: list[tuple[str, str]] = []

    def stream(self, prompt: str, context: str):
        self.calls.append((prompt, context))
        if self.error is not None:
            raise self.error
        yield from self.fragments


class FakeClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".recall.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def config():
    cfg = RecallConfig()
    cfg.embedding.dimensions = DIMS
    return cfg


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Isolated CLI working directory: 4-dim embeddings, dummy API key, no global config."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("recall.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global.yaml")
    for var in ("RECALL_EMBEDDING_MODEL", "RECALL_GENERATION_MODEL", "RECALL_SUMMARY_MODEL"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    (tmp_path / "recall.yaml").write_text(f"embedding:\n  dimensions: {DIMS}\n", encoding="utf-8")
    return tmp_path
