"""
Application configuration.

Values are resolved from, lowest to highest precedence:
built-in defaults, an optional YAML file, a .env file and LOCALRAG_* /
OLLAMA_* environment variables. Variables already present in the process
environment win over the .env file.
"""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

try:
    import yaml
except ImportError:
    yaml = None

try:
    from dotenv import find_dotenv, load_dotenv
except ImportError:
    find_dotenv = None
    load_dotenv = None

from documents.pipeline import PipelineConfig
from downloads import DownloadConfig
from runtime.core.types import (
    DEFAULT_BASE_URL,
    DEFAULT_EMBEDDING_MODEL,
    DEFAULT_GENERATION_MODEL,
    DEFAULT_RUNTIME_VERSION,
    RuntimeConfig,
)
from runtime.utils.retry import RetryConfig


logger = logging.getLogger(__name__)

ENV_PREFIX = "LOCALRAG_"
DATABASE_DIR_NAME = "database"
DATABASE_FILE_NAME = "database.db"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


class ConfigError(Exception):
    """Raised when a configuration value is missing or invalid."""
    pass


@dataclass
class AppConfig:
    """
    Configuration for the whole application.

    Attributes:
        user_data_dir: Root of all application data
        runtime_name: Directory name of the runtime under <user_data>/files
        runtime_version: Runtime release to download
        runtime_download_url: Explicit artifact URL (platform default if None)
        base_url: Loopback URL of the runtime API
        models_dir: Where the runtime keeps models (runtime directory if None)
        generation_model: Model used for generation
        embedding_model: Model used for embeddings
        vision_model: Model used to transcribe images and scanned pages
        required_models: Models pulled by ensure_ready (generation + embedding if empty)
        embedding_dimensions: Fixed vector length of the vector store
        health_attempts: Health probes after spawning the runtime
        health_delay_seconds: Delay before each health probe
        request_timeout_seconds: Timeout for runtime API requests
        pull_timeout_seconds: Socket timeout while streaming a model pull
        fail_on_model_error: Whether a failed model pull fails ensure_ready
        download_workers: Concurrent transfers in download_all
        download_timeout_seconds: Absolute deadline per transfer
        max_redirects: Redirect hops followed per transfer
        embed_batch_size: Chunks per embedding request
        embed_retry_attempts: Attempts per embedding batch
        window_size: Character window for unpunctuated text
        search_limit: Default number of search hits
    """
    user_data_dir: Path = field(default_factory=lambda: Path.home() / ".localrag")
    runtime_name: str = "ollama"
    runtime_version: str = DEFAULT_RUNTIME_VERSION
    runtime_download_url: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    models_dir: Optional[Path] = None
    generation_model: str = DEFAULT_GENERATION_MODEL
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    vision_model: str = DEFAULT_GENERATION_MODEL
    required_models: List[str] = field(default_factory=list)
    embedding_dimensions: int = 768
    health_attempts: int = 5
    health_delay_seconds: float = 1.0
    request_timeout_seconds: float = 120.0
    pull_timeout_seconds: float = 600.0
    fail_on_model_error: bool = False
    download_workers: int = 4
    download_timeout_seconds: float = 12 * 60 * 60
    max_redirects: int = 5
    embed_batch_size: int = 16
    embed_retry_attempts: int = 3
    window_size: int = 6000
    search_limit: int = 5

    def __post_init__(self):
        self.user_data_dir = Path(self.user_data_dir).expanduser()
        if self.models_dir is not None:
            self.models_dir = Path(self.models_dir).expanduser()
        if not self.required_models:
            self.required_models = [self.generation_model, self.embedding_model]

    # =========================================================================
    # Derived paths
    # =========================================================================

    @property
    def files_root(self) -> Path:
        return self.user_data_dir / "files"

    @property
    def runtime_dir(self) -> Path:
        return self.files_root / self.runtime_name

    @property
    def database_path(self) -> Path:
        return self.files_root / DATABASE_DIR_NAME / DATABASE_FILE_NAME

    @property
    def reserved_subjects(self) -> List[str]:
        """Directory names under files_root that can never be subject ids."""
        return [self.runtime_name, DATABASE_DIR_NAME]

    # =========================================================================
    # Component configs
    # =========================================================================

    def runtime_config(self) -> RuntimeConfig:
        return RuntimeConfig(
            runtime_dir=self.runtime_dir,
            base_url=self.base_url,
            version=self.runtime_version,
            download_url=self.runtime_download_url,
            models_dir=self.models_dir,
            required_models=list(self.required_models),
            generation_model=self.generation_model,
            embedding_model=self.embedding_model,
            vision_model=self.vision_model,
            health_attempts=self.health_attempts,
            health_delay_seconds=self.health_delay_seconds,
            timeout_seconds=self.request_timeout_seconds,
            pull_timeout_seconds=self.pull_timeout_seconds,
            fail_on_model_error=self.fail_on_model_error,
        )

    def download_config(self) -> DownloadConfig:
        return DownloadConfig(
            max_workers=self.download_workers,
            max_redirects=self.max_redirects,
            timeout_seconds=self.download_timeout_seconds,
        )

    def pipeline_config(self) -> PipelineConfig:
        return PipelineConfig(
            embed_batch_size=self.embed_batch_size,
            embedding_model=self.embedding_model,
            embed_retry=RetryConfig(max_attempts=self.embed_retry_attempts),
            default_search_limit=self.search_limit,
        )

    def validate(self) -> None:
        """
        Check value ranges.

        Raises:
            ConfigError: On the first invalid value
        """
        positive = (
            "embedding_dimensions",
            "health_attempts",
            "download_workers",
            "embed_batch_size",
            "embed_retry_attempts",
            "window_size",
        )
        for name in positive:
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive, got {getattr(self, name)}")

        for name in ("health_delay_seconds", "request_timeout_seconds",
                     "pull_timeout_seconds", "download_timeout_seconds"):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must not be negative, got {getattr(self, name)}")

        if self.max_redirects < 0:
            raise ConfigError(f"max_redirects must not be negative, got {self.max_redirects}")

        if not self.base_url.startswith(("http://", "https://")):
            raise ConfigError(f"base_url must be an http(s) URL, got {self.base_url}")

        name = self.runtime_name
        if not name or name in (".", "..") or "/" in name or "\\" in name:
            raise ConfigError(f"Invalid runtime_name: {name!r}")

    def to_dict(self) -> Dict[str, Any]:
        result = {}
        for f in fields(self):
            value = getattr(self, f.name)
            result[f.name] = str(value) if isinstance(value, Path) else value
        return result


# =============================================================================
# Loading
# =============================================================================

def load_config(
    config_path: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
    dotenv_path: Optional[Path] = None,
) -> AppConfig:
    """
    Build the application configuration.

    Args:
        config_path: Optional YAML file with AppConfig field names as keys
        env: Environment to read overrides from; os.environ (after loading
            .env) if None
        dotenv_path: Explicit .env file (searched from the working directory if None)

    Returns:
        Validated AppConfig

    Raises:
        FileNotFoundError: If config_path does not exist
        ConfigError: If a value is unknown or invalid
    """
    values: Dict[str, Any] = {}

    if config_path is not None:
        values.update(_load_yaml(Path(config_path)))

    if env is None:
        _load_dotenv(dotenv_path)
        env = os.environ

    values.update(_env_overrides(env))

    known = {f.name: f for f in fields(AppConfig)}
    kwargs = {}
    for name, raw in values.items():
        if name not in known:
            raise ConfigError(f"Unknown configuration key: {name}")
        kwargs[name] = _convert(known[name], raw)

    config = AppConfig(**kwargs)
    config.validate()
    logger.debug(f"Configuration resolved: user_data_dir={config.user_data_dir}")
    return config


def _load_yaml(path: Path) -> Dict[str, Any]:
    if yaml is None:
        raise ImportError(
            "pyyaml is required for config loading. "
            "Install with: pip install pyyaml"
        )

    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    logger.info(f"Loading config from: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def _load_dotenv(dotenv_path: Optional[Path]) -> None:
    """Load .env into the process environment without overriding set variables."""
    if load_dotenv is None:
        return
    path = dotenv_path or find_dotenv(usecwd=True)
    if path:
        load_dotenv(path, override=False)


def _env_overrides(env: Mapping[str, str]) -> Dict[str, str]:
    overrides: Dict[str, str] = {}

    # Variables the runtime itself understands
    if env.get("OLLAMA_HOST"):
        host = env["OLLAMA_HOST"]
        overrides["base_url"] = host if "://" in host else f"http://{host}"
    if env.get("OLLAMA_MODELS"):
        overrides["models_dir"] = env["OLLAMA_MODELS"]

    for f in fields(AppConfig):
        key = f"{ENV_PREFIX}{f.name.upper()}"
        if env.get(key):
            overrides[f.name] = env[key]

    return overrides


def _convert(f, raw: Any) -> Any:
    """Coerce a YAML or environment value to the field's type."""
    target = f.type
    if raw is None:
        if target in (Optional[Path], Optional[str]):
            return None
        raise ConfigError(f"Missing value for {f.name}")

    try:
        if target is bool:
            return _to_bool(raw)
        if target is int:
            if isinstance(raw, bool):
                raise ValueError("expected an integer")
            return int(raw)
        if target is float:
            return float(raw)
        if target in (Path, Optional[Path]):
            return Path(str(raw)).expanduser()
        if target == List[str]:
            if isinstance(raw, str):
                return [item.strip() for item in raw.split(",") if item.strip()]
            return [str(item) for item in raw]
        return str(raw)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for {f.name}: {raw!r} ({e})") from e


def _to_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    text = str(raw).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError("expected a boolean")
