from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from retention.domain.constants import (
    DEFAULT_DB_NAME,
    DEFAULT_HOST,
    DEFAULT_PORT,
    RETEST_COOLDOWN_HOURS,
)


def config_files() -> list[Path]:
    return [
        Path.home() / ".config/retention/config.toml",
        Path.home() / ".retention.toml",
    ]


class AppConfig(BaseSettings):
    """
    Configuration model for the retention scheduler.
    Supports loading from:
    1. Environment variables (RETENTION_*)
    2. Config file (~/.config/retention/config.toml)
    3. Manual overrides (CLI)
    """

    model_config = SettingsConfigDict(
        env_prefix="RETENTION_",
        extra="ignore",
    )

    # Storage
    backend: Literal["sqlite", "memory"] = "sqlite"
    db_path: Path = Field(
        default_factory=lambda: Path.home() / ".local/share/retention" / DEFAULT_DB_NAME
    )

    # Server
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    # Recall tests
    retest_cooldown_hours: float = RETEST_COOLDOWN_HOURS

    verbose: int = 1

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        from pydantic_settings import TomlConfigSettingsSource

        toml_file = next((f for f in config_files() if f.exists()), None)

        # Later sources lose; init (CLI overrides) must win over env and file.
        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (init_settings, env_settings)

    @field_validator("db_path", mode="before")
    @classmethod
    def expand_path(cls, v: Any) -> Path:
        return Path(v).expanduser()

    @field_validator("retest_cooldown_hours")
    @classmethod
    def non_negative_cooldown(cls, v: float) -> float:
        if v < 0:
            raise ValueError("retest_cooldown_hours must be >= 0")
        return v


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/retention/config.toml (if exists)
    3. Environment variables (RETENTION_*)
    4. cli_overrides (passed from Typer), None values ignored
    """
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    return AppConfig(**overrides)
