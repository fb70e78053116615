"""recall configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site — not in this module)
  2. Environment variables  (RECALL_EMBEDDING_MODEL, RECALL_GENERATION_MODEL,
                             RECALL_SUMMARY_MODEL)
  3. Per-project recall.yaml  (current working directory)
  4. Global ~/.recall/config.yaml  (model defaults only — no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".recall"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "recall.yaml"

# Key names that look like credentials. Does NOT match legitimate keys such as
# token_budget, max_tokens or min_tokens_before_speaker_split.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["embedding", "generation", "chunker", "summary", "queue", "retrieval", "fallback"]
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingCfg:
    """Embedding backend configuration (recall.yaml: embedding:)."""

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    timeout_s: float = 10.0


@dataclass
class GenerationCfg:
    """Answer generation configuration (recall.yaml: generation:)."""

    model: str = "openai/gpt-4o-mini"
    max_tokens: int = 512
    timeout_s: float = 30.0


@dataclass
class ChunkerCfg:
    """Transcript chunking limits (recall.yaml: chunker:).

    Attributes:
        max_tokens: Token ceiling for a chunk.
        max_span_ms: Longest wall-clock span a chunk may cover.
        min_tokens_before_speaker_split: A speaker change only closes the
            buffer once it holds at least this many tokens.
    """

    max_tokens: int = 300
    max_span_ms: int = 120_000
    min_tokens_before_speaker_split: int = 60


@dataclass
class SummaryCfg:
    """Rolling meeting summary configuration (recall.yaml: summary:)."""

    model: str = "openai/gpt-4o-mini"
    every_n_chunks: int = 5
    max_tokens: int = 300
    max_input_chars: int = 8_000
    timeout_s: float = 30.0


@dataclass
class QueueCfg:
    """Embedding queue retry/backoff policy (recall.yaml: queue:).

    Attributes:
        max_retries: Failures after which a job is marked failed terminally.
        base_delay_s: Backoff base; a job waits ``base_delay_s * 2**retry_count``.
        max_delay_s: Upper bound on a single backoff delay.
        stale_after_s: ``in_progress`` jobs older than this are reset on recovery.
        batch_size: Jobs claimed per drain.
        poll_interval_s: Sleep between background drains.
    """

    max_retries: int = 5
    base_delay_s: float = 2.0
    max_delay_s: float = 300.0
    stale_after_s: float = 120.0
    batch_size: int = 16
    poll_interval_s: float = 5.0


@dataclass
class RetrievalCfg:
    """Ranking and context budget configuration (recall.yaml: retrieval:).

    Attributes:
        token_budget: Token cap for the assembled context.
        recency_weight: Weight of the normalised recency bonus added to cosine
            similarity.
        min_chunk_similarity: Chunks below this cosine similarity are dropped.
        summary_threshold: Meeting summary is prepended when its similarity to
            the query exceeds this value.
    """

    token_budget: int = 2_000
    recency_weight: float = 0.02
    min_chunk_similarity: float = 0.2
    summary_threshold: float = 0.75


@dataclass
class FallbackCfg:
    """Context-window fallback configuration (recall.yaml: fallback:)."""

    min_chunks: int = 2
    recent_utterances: int = 20
    remember_unavailable: bool = True


@dataclass
class RecallConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    chunker: ChunkerCfg = field(default_factory=ChunkerCfg)
    summary: SummaryCfg = field(default_factory=SummaryCfg)
    queue: QueueCfg = field(default_factory=QueueCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    fallback: FallbackCfg = field(default_factory=FallbackCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: RecallConfig) -> None:
    """Raise ConfigError for values the pipeline cannot run with."""
    positive = {
        "embedding.dimensions": cfg.embedding.dimensions,
        "embedding.timeout_s": cfg.embedding.timeout_s,
        "generation.timeout_s": cfg.generation.timeout_s,
        "chunker.max_tokens": cfg.chunker.max_tokens,
        "chunker.max_span_ms": cfg.chunker.max_span_ms,
        "summary.every_n_chunks": cfg.summary.every_n_chunks,
        "summary.timeout_s": cfg.summary.timeout_s,
        "queue.max_retries": cfg.queue.max_retries,
        "queue.batch_size": cfg.queue.batch_size,
        "queue.poll_interval_s": cfg.queue.poll_interval_s,
        "retrieval.token_budget": cfg.retrieval.token_budget,
        "fallback.recent_utterances": cfg.fallback.recent_utterances,
    }
    for name, value in positive.items():
        if value <= 0:
            raise ConfigError(f"{name} must be > 0, got {value}")

    non_negative = {
        "chunker.min_tokens_before_speaker_split": cfg.chunker.min_tokens_before_speaker_split,
        "queue.base_delay_s": cfg.queue.base_delay_s,
        "queue.max_delay_s": cfg.queue.max_delay_s,
        "queue.stale_after_s": cfg.queue.stale_after_s,
        "retrieval.recency_weight": cfg.retrieval.recency_weight,
        "fallback.min_chunks": cfg.fallback.min_chunks,
    }
    for name, value in non_negative.items():
        if value < 0:
            raise ConfigError(f"{name} must be >= 0, got {value}")


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _parse_section(raw: dict[str, Any], defaults: Any) -> Any:
    """Build a section dataclass from *raw*, coercing to the default's types."""
    values: dict[str, Any] = {}
    for f in fields(defaults):
        current = getattr(defaults, f.name)
        if f.name not in raw:
            values[f.name] = current
            continue
        value = raw[f.name]
        if isinstance(current, bool) and not isinstance(value, bool):
            raise ConfigError(f"Invalid value for '{f.name}': {value!r} (expected true/false)")
        try:
            values[f.name] = type(current)(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(
                f"Invalid value for '{f.name}': {value!r} ({exc})"
            ) from exc
    return type(defaults)(**values)


def _cfg_from_dict(data: dict[str, Any]) -> RecallConfig:
    """Build a *RecallConfig* from a merged raw YAML dict."""
    cfg = RecallConfig()
    for section in _KNOWN_SECTIONS:
        raw = data.get(section)
        if raw is None:
            continue
        if not isinstance(raw, dict):
            raise ConfigError(f"Config section '{section}' must be a mapping.")
        setattr(cfg, section, _parse_section(raw, getattr(cfg, section)))
    return cfg


def _apply_env_overrides(cfg: RecallConfig) -> RecallConfig:
    """Apply RECALL_* environment variable overrides."""
    if model := os.environ.get("RECALL_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if model := os.environ.get("RECALL_GENERATION_MODEL"):
        cfg.generation.model = model
    if model := os.environ.get("RECALL_SUMMARY_MODEL"):
        cfg.summary.model = model
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> RecallConfig:
    """Load and return a merged *RecallConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *recall.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged *RecallConfig* with env var overrides applied.

    Raises:
        ConfigError: If global config contains API-key-like fields or any
            value is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)
    cfg = _apply_env_overrides(cfg)
    _validate(cfg)
    return cfg
