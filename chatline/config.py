"""Configuration management for Chatline."""

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


# Paths
DEFAULT_CONFIG_PATH = Path("~/.chatline/config.yaml").expanduser()
DEFAULT_DB_PATH = Path("~/.chatline/conversations.db").expanduser()
LOCAL_CONFIG_FILENAME = "config.yaml"


class ModelConfig(BaseModel):
    """Model provider configuration."""

    provider: str = "openai"
    model: str = "o1"
    api_key: str = ""
    base_url: str = ""
    temperature: float | None = None
    max_tokens: int | None = None
    timeout: float = 60.0


class TitleConfig(BaseModel):
    """Title generation and caching."""

    cache_size: int = 10_000
    # Bump when the title prompt or its post-processing changes.
    prompt_version: str = "v1"
    max_length: int = 80
    max_budget_seconds: float = 15.0
    safety_margin_seconds: float = 0.5
    min_budget_seconds: float = 0.5
    default_title: str = "Untitled conversation"


class TurnConfig(BaseModel):
    """Per-turn limits."""

    request_timeout_seconds: float = 30.0
    max_tool_rounds: int = 15


class WeatherConfig(BaseModel):
    """Weather capability configuration."""

    api_key: str = ""
    base_url: str = "http://api.weatherapi.com/v1"
    timeout: float = 10.0
    default_forecast_days: int = 3
    max_forecast_days: int = 14


class HolidaysConfig(BaseModel):
    """Holiday calendar feed configuration."""

    calendar_url: str = ""
    timeout: float = 10.0


class StorageConfig(BaseModel):
    """Conversation storage configuration."""

    path: str = str(DEFAULT_DB_PATH)


class WebConfig(BaseModel):
    """HTTP API configuration."""

    host: str = "127.0.0.1"
    port: int = 8080


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["console", "json"] = "console"


class Config(BaseSettings):
    """Main configuration for Chatline."""

    model: ModelConfig = Field(default_factory=ModelConfig)
    title: TitleConfig = Field(default_factory=TitleConfig)
    turn: TurnConfig = Field(default_factory=TurnConfig)
    weather: WeatherConfig = Field(default_factory=WeatherConfig)
    holidays: HolidaysConfig = Field(default_factory=HolidaysConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    web: WebConfig = Field(default_factory=WebConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="CHATLINE_",
        env_file=".env",
        env_nested_delimiter="__",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # YAML values arrive as init kwargs; CHATLINE_* env vars take precedence over them.
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @classmethod
    def resolve_default_config_path(cls) -> Path:
        """Resolve default config path with local-first precedence."""
        local_path = Path.cwd() / LOCAL_CONFIG_FILENAME
        if local_path.exists():
            return local_path
        return DEFAULT_CONFIG_PATH

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> "Config":
        """Load configuration from YAML file."""
        config_path = Path(path).expanduser() if path else cls.resolve_default_config_path()

        if not config_path.exists():
            return cls()

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from YAML. `CHATLINE_*` env vars override YAML values."""
        return cls.from_yaml()

    def save(self, path: Path | str | None = None) -> None:
        """Save configuration to YAML file."""
        config_path = Path(path) if path else DEFAULT_CONFIG_PATH
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(exclude_none=True)

        with open(config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
