import logging
import os
import sys
import tomllib
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from llm_stream.providers.registry import provider_registry
from llm_stream.utils.exceptions import ConfigError, raise_not_found

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str | int = logging.WARNING):
    """Configure application logging.

    Logs go to stderr; stdout is reserved for completion text.
    """
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )
    # Set third-party loggers to WARNING to reduce noise
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="LLM_STREAM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Config file location
    config_dir: str = "~/.config/llm-stream"
    config_file: Optional[str] = None

    log_level: str = "WARNING"

    # Timeout for the CLI's HTTP client (seconds). The streaming core
    # imposes none of its own.
    provider_timeout: int = 60

    @property
    def config_path(self) -> Path:
        if self.config_file:
            return Path(self.config_file).expanduser()
        return Path(self.config_dir).expanduser() / "config.toml"


class ModelSettings(BaseModel):
    """Provider and sampling fields shared by the config file and presets"""

    env: Optional[str] = None
    key: Optional[str] = None
    base_url: Optional[str] = None
    model: Optional[str] = None
    system: Optional[str] = None
    max_tokens: Optional[int] = None
    min_tokens: Optional[int] = None
    version: Optional[str] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None


class Preset(ModelSettings):
    name: str
    api: str


class Template(BaseModel):
    name: str
    description: Optional[str] = None
    template: str
    default_vars: Optional[Dict[str, Any]] = None
    system: Optional[str] = None


class FileConfig(ModelSettings):
    """Contents of config.toml

    `base_url` and `env` have no file-level default: each provider supplies
    its own endpoint and key variable.
    """

    api: str = "openai"
    language: str = "markdown"

    presets: List[Preset] = []
    templates: List[Template] = []

    def get_preset(self, name: str) -> Preset:
        for preset in self.presets:
            if preset.name == name:
                return preset
        raise_not_found("Preset", name)

    def get_template(self, name: str) -> Template:
        for template in self.templates:
            if template.name == name:
                return template
        raise_not_found("Template", name)


def load_config(path: Path) -> FileConfig:
    """Load config.toml, or defaults when the file does not exist."""
    if not path.exists():
        logger.debug(f"No config file at {path}, using defaults")
        return FileConfig()

    try:
        with path.open("rb") as f:
            data = tomllib.load(f)
        return FileConfig.model_validate(data)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"Invalid config file {path}: {e}") from e


def resolve_api_key(
    key: Optional[str], env: Optional[str], default_env: str
) -> Optional[str]:
    """Explicit key first, then the named environment variable."""
    if key:
        return key
    return os.environ.get(env or default_env)


# Connection fields that only make sense for the provider the file's
# top-level `api` names
_PROVIDER_BOUND_FIELDS = ("env", "key", "base_url", "version", "model")


def resolve_model_settings(
    overrides: ModelSettings,
    api: Optional[str],
    preset: Optional[Preset],
    config: FileConfig,
) -> tuple[str, ModelSettings]:
    """
    Merge option layers: command line, then preset, then config file defaults.

    Args:
        overrides: Values given explicitly (command line)
        api: Provider given explicitly, if any
        preset: Selected preset, if any
        config: Loaded config file

    Returns:
        Tuple of (canonical provider name, merged settings)
    """
    resolved_api = provider_registry.resolve(
        api or (preset.api if preset else None) or config.api
    )
    same_provider = provider_registry.resolve(config.api) == resolved_api

    merged: Dict[str, Any] = {}
    for name in ModelSettings.model_fields:
        layers = [overrides, preset]
        if same_provider or name not in _PROVIDER_BOUND_FIELDS:
            layers.append(config)
        merged[name] = next(
            (getattr(layer, name) for layer in layers if layer and getattr(layer, name) is not None),
            None,
        )

    logger.debug(f"Resolved provider '{resolved_api}' (preset={preset.name if preset else None})")
    return resolved_api, ModelSettings(**merged)


settings = Settings()
