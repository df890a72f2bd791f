"""raggy configuration loader.

Priority (high → low):
  1. CLI flags               (handled at call site, not in this module)
  2. Environment variables   (EMBEDDINGS_*, SEARCH_MIN_SCORE, MMR_*, ...)
  3. Per-project raggy.yaml
  4. Global ~/.raggy/config.yaml
  5. Hardcoded defaults

Values that cannot be parsed raise ConfigError. Values out of range are
clamped into range. All YAML reads use yaml.safe_load().
"""

from __future__ import annotations

import os
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".raggy"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "raggy.yaml"

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["embedding", "chunking", "search", "store", "logging"]
)

SUPPORTED_PROVIDERS: frozenset[str] = frozenset(["ollama"])
TOKENIZERS: frozenset[str] = frozenset(["regex", "smart"])


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file or env var holds a value that cannot be used."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingCfg:
    """Embedding backend (raggy.yaml: embedding:)."""

    provider: str = "ollama"
    base_url: str = "http://localhost:11434"
    model: str = "nomic-embed-text"
    concurrency: int = 4
    timeout: float = 60.0


@dataclass
class ChunkingCfg:
    """Sentence windowing and the character splitter (raggy.yaml: chunking:)."""

    tokenizer: str = "regex"  # regex | smart
    max_sentences: int = 6
    overlap_sentences: int = 2
    chunk_chars: int = 800
    chunk_overlap: int = 120


@dataclass
class SearchCfg:
    """Search defaults (raggy.yaml: search:)."""

    min_score: float = 0.5
    mmr_lambda: float = 0.5
    mmr_pool_base: int = 8
    mmr_pool_min: int = 50
    top_k: int = 5


@dataclass
class StoreCfg:
    """Store location (raggy.yaml: store:).

    Attributes:
        data_dir: Root data directory; artifacts live in ``<data_dir>/embeddings``.
            Relative paths resolve against the project directory.
    """

    data_dir: str = "data"


@dataclass
class LoggingCfg:
    level: str = "WARNING"
    json: bool = False


@dataclass
class RaggyConfig:
    """Root configuration object, built by load_config() from merged layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    search: SearchCfg = field(default_factory=SearchCfg)
    store: StoreCfg = field(default_factory=StoreCfg)
    logging: LoggingCfg = field(default_factory=LoggingCfg)

    def embeddings_dir(self, project_dir: Path | None = None) -> Path:
        """Absolute path of ``<data_dir>/embeddings``."""
        base = Path(self.store.data_dir).expanduser()
        if not base.is_absolute():
            base = (project_dir if project_dir is not None else Path.cwd()) / base
        return base / "embeddings"


# ---------------------------------------------------------------------------
# Value parsing
# ---------------------------------------------------------------------------


def _as_int(value: Any, key: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"'{key}' must be an integer, got {value!r}")
    try:
        return int(str(value).strip()) if isinstance(value, str) else int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"'{key}' must be an integer, got {value!r}") from None


def _as_float(value: Any, key: str) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"'{key}' must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"'{key}' must be a number, got {value!r}") from None


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    s = str(value).strip().lower()
    if s in ("1", "true", "yes", "on"):
        return True
    if s in ("0", "false", "no", "off", ""):
        return False
    raise ConfigError(f"'{key}' must be a boolean, got {value!r}")


def _clamp(value: float, lo: float, hi: float) -> float:
    return min(hi, max(lo, value))


def _normalise(cfg: RaggyConfig) -> RaggyConfig:
    """Clamp every numeric field into its valid range."""
    e, c, s = cfg.embedding, cfg.chunking, cfg.search
    e.concurrency = max(1, e.concurrency)
    if e.timeout <= 0:
        e.timeout = EmbeddingCfg.timeout
    if c.tokenizer not in TOKENIZERS:
        c.tokenizer = "regex"
    c.max_sentences = max(1, c.max_sentences)
    c.overlap_sentences = max(0, c.overlap_sentences)
    c.chunk_chars = max(200, c.chunk_chars)
    c.chunk_overlap = int(_clamp(c.chunk_overlap, 0, 500))
    s.min_score = _clamp(s.min_score, 0.0, 1.0)
    s.mmr_lambda = _clamp(s.mmr_lambda, 0.0, 1.0)
    s.mmr_pool_base = max(1, s.mmr_pool_base)
    s.mmr_pool_min = max(0, s.mmr_pool_min)
    s.top_k = max(1, s.top_k)
    cfg.logging.level = cfg.logging.level.upper()
    return cfg


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config file '{path}' is not valid YAML: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file '{path}' must contain a mapping at the top level.")
    return raw


def _cfg_from_dict(data: dict[str, Any]) -> RaggyConfig:
    """Build a *RaggyConfig* from a merged raw YAML dict."""
    cfg = RaggyConfig()

    if "embedding" in data:
        e = data["embedding"] or {}
        cfg.embedding = EmbeddingCfg(
            provider=str(e.get("provider", cfg.embedding.provider)),
            base_url=str(e.get("base_url", cfg.embedding.base_url)),
            model=str(e.get("model", cfg.embedding.model)),
            concurrency=_as_int(
                e.get("concurrency", cfg.embedding.concurrency), "embedding.concurrency"
            ),
            timeout=_as_float(e.get("timeout", cfg.embedding.timeout), "embedding.timeout"),
        )

    if "chunking" in data:
        c = data["chunking"] or {}
        cfg.chunking = ChunkingCfg(
            tokenizer=str(c.get("tokenizer", cfg.chunking.tokenizer)),
            max_sentences=_as_int(
                c.get("max_sentences", cfg.chunking.max_sentences), "chunking.max_sentences"
            ),
            overlap_sentences=_as_int(
                c.get("overlap_sentences", cfg.chunking.overlap_sentences),
                "chunking.overlap_sentences",
            ),
            chunk_chars=_as_int(
                c.get("chunk_chars", cfg.chunking.chunk_chars), "chunking.chunk_chars"
            ),
            chunk_overlap=_as_int(
                c.get("chunk_overlap", cfg.chunking.chunk_overlap), "chunking.chunk_overlap"
            ),
        )

    if "search" in data:
        s = data["search"] or {}
        cfg.search = SearchCfg(
            min_score=_as_float(s.get("min_score", cfg.search.min_score), "search.min_score"),
            mmr_lambda=_as_float(s.get("mmr_lambda", cfg.search.mmr_lambda), "search.mmr_lambda"),
            mmr_pool_base=_as_int(
                s.get("mmr_pool_base", cfg.search.mmr_pool_base), "search.mmr_pool_base"
            ),
            mmr_pool_min=_as_int(
                s.get("mmr_pool_min", cfg.search.mmr_pool_min), "search.mmr_pool_min"
            ),
            top_k=_as_int(s.get("top_k", cfg.search.top_k), "search.top_k"),
        )

    if "store" in data:
        st = data["store"] or {}
        cfg.store = StoreCfg(data_dir=str(st.get("data_dir", cfg.store.data_dir)))

    if "logging" in data:
        lg = data["logging"] or {}
        cfg.logging = LoggingCfg(
            level=str(lg.get("level", cfg.logging.level)),
            json=_as_bool(lg.get("json", cfg.logging.json), "logging.json"),
        )

    return cfg


# (env var, target section, field, parser)
_ENV_OVERRIDES: tuple[tuple[str, str, str, Callable[[Any, str], Any]], ...] = (
    ("EMBEDDINGS_PROVIDER", "embedding", "provider", lambda v, k: v.strip()),
    ("EMBEDDINGS_BASE_URL", "embedding", "base_url", lambda v, k: v.strip()),
    ("EMBEDDINGS_MODEL", "embedding", "model", lambda v, k: v.strip()),
    ("EMBEDDINGS_CONCURRENCY", "embedding", "concurrency", _as_int),
    ("EMBEDDINGS_TIMEOUT", "embedding", "timeout", _as_float),
    ("SENT_TOKENIZER", "chunking", "tokenizer", lambda v, k: v.strip().lower()),
    ("CHUNK_CHARS", "chunking", "chunk_chars", _as_int),
    ("CHUNK_OVERLAP", "chunking", "chunk_overlap", _as_int),
    ("SEARCH_MIN_SCORE", "search", "min_score", _as_float),
    ("MMR_LAMBDA", "search", "mmr_lambda", _as_float),
    ("MMR_POOL_BASE", "search", "mmr_pool_base", _as_int),
    ("MMR_POOL_MIN", "search", "mmr_pool_min", _as_int),
    ("RAGGY_DATA_DIR", "store", "data_dir", lambda v, k: v.strip()),
    ("RAGGY_LOG_LEVEL", "logging", "level", lambda v, k: v.strip()),
)


def _apply_env_overrides(cfg: RaggyConfig) -> RaggyConfig:
    """Apply environment variable overrides. Empty values are ignored."""
    for var, section, attr, parse in _ENV_OVERRIDES:
        raw = os.environ.get(var)
        if raw is None or raw.strip() == "":
            continue
        setattr(getattr(cfg, section), attr, parse(raw, var))
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> RaggyConfig:
    """Load and return a merged *RaggyConfig*.

    Applies layers in order: global → per-project → env vars, then clamps.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *raggy.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If a file is not a YAML mapping, a value cannot be
            parsed, or the embedding provider is not supported.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = _read_yaml(global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = _read_yaml(project_cfg_path)
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)
    cfg = _apply_env_overrides(cfg)

    if cfg.embedding.provider not in SUPPORTED_PROVIDERS:
        raise ConfigError(
            f"Unsupported embedding provider '{cfg.embedding.provider}'.\n"
            f"  Supported: {', '.join(sorted(SUPPORTED_PROVIDERS))}"
        )

    return _normalise(cfg)
