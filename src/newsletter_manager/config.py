"""Configuration management for newsletter-manager."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMConfig(BaseModel):
    """Local Ollama model configuration."""

    enabled: bool = True  # False = rules only
    model: str = "llama3.2"
    ollama_base_url: str = "http://localhost:11434"
    temperature: float = 0.1
    max_tokens: int = Field(default=50, ge=1, le=50)  # num_predict
    probe_timeout: float = 2.0  # seconds, GET /api/tags
    request_timeout: float = 2.0  # seconds, POST /api/generate


class ScanConfig(BaseModel):
    """Configuration for batched scans."""

    batch_size: int = Field(default=5, ge=1)
    batch_delay: float = Field(default=0.2, ge=0.0)  # seconds between batches
    max_candidates: int = Field(default=50, ge=1)
    # Source readiness polling: 50 x 200ms = 10 seconds
    ready_attempts: int = Field(default=50, ge=1)
    ready_interval: float = Field(default=0.2, ge=0.0)


class SignalConfig(BaseModel):
    """Heuristic signal policy configuration.

    policy_path points to a YAML policy document; the bundled default policy
    is used when it is not set.
    """

    policy_path: Path | None = None
    medium_threshold: int = Field(default=2, ge=1)


class Settings(BaseSettings):
    """Application settings loaded from environment and config files."""

    model_config = SettingsConfigDict(
        env_prefix="NEWSLETTER_MANAGER_",
        env_nested_delimiter="__",
    )

    # Paths
    config_dir: Path = Field(
        default_factory=lambda: Path.home() / ".config" / "newsletter-manager"
    )
    data_dir: Path = Field(
        default_factory=lambda: Path.home() / ".local" / "share" / "newsletter-manager"
    )
    db_path: Path | None = None

    llm: LLMConfig = Field(default_factory=LLMConfig)
    scan: ScanConfig = Field(default_factory=ScanConfig)
    signals: SignalConfig = Field(default_factory=SignalConfig)

    def __init__(self, **data: Any) -> None:
        super().__init__(**data)
        if self.db_path is None:
            self.db_path = self.data_dir / "stats.db"

    def ensure_dirs(self) -> None:
        """Create necessary directories."""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.data_dir.mkdir(parents=True, exist_ok=True)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries, with override taking precedence.

    Nested dicts are merged recursively. Lists and other values are replaced.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_settings(config_dir: Path | None = None) -> Settings:
    """Load settings from environment and config files.

    Loads config.yaml first, then merges config.local.yaml on top if it
    exists (user-editable overrides). Without an explicit config_dir the
    directory comes from NEWSLETTER_MANAGER_CONFIG_DIR or the default.
    """
    explicit_dir = config_dir is not None
    if config_dir is None:
        config_dir = Settings().config_dir
    config_file = config_dir / "config.yaml"
    local_config_file = config_dir / "config.local.yaml"

    file_settings: dict[str, Any] = {}

    if config_file.exists():
        with open(config_file) as f:
            file_settings = yaml.safe_load(f) or {}

    if local_config_file.exists():
        with open(local_config_file) as f:
            local_settings = yaml.safe_load(f) or {}
        file_settings = _deep_merge(file_settings, local_settings)

    # Expand ~ in the policy path if provided
    signals = file_settings.get("signals")
    if isinstance(signals, dict) and isinstance(signals.get("policy_path"), str):
        signals["policy_path"] = Path(signals["policy_path"]).expanduser()

    if explicit_dir:
        file_settings.setdefault("config_dir", config_dir)
    return Settings(**file_settings)
