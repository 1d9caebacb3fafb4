"""Application configuration using pydantic-settings."""

import functools
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


def _find_project_root() -> Path:
    """Find project root by locating pyproject.toml."""
    current = Path(__file__).resolve()
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            return parent
    return Path.cwd()


class YamlSettingsSource(PydanticBaseSettingsSource):
    """Custom settings source that loads from settings.yaml."""

    def get_field_value(self, field_name: str) -> tuple[Any, str, bool]:
        """Not used - we implement __call__ instead."""
        return None, "", False

    def __call__(self) -> dict[str, Any]:
        """Load settings from YAML file."""
        yaml_path = _find_project_root() / "config" / "settings.yaml"
        if not yaml_path.exists():
            return {}

        with open(yaml_path, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        # Flatten nested structure to match Settings field names
        flattened = {}
        if 'server' in data:
            flattened['host'] = data['server'].get('host')
            flattened['port'] = data['server'].get('port')
        if 'progress' in data:
            progress = data['progress']
            flattened['progress_cache_key'] = progress.get('cache_key')
            flattened['max_seen_problem_ids'] = progress.get('max_seen_problem_ids')
            flattened['levelup_badge_step'] = progress.get('levelup_badge_step')
        if 'durable' in data:
            flattened['durable_enabled'] = data['durable'].get('enabled')
            flattened['durable_db_name'] = data['durable'].get('db_name')
            flattened['durable_db_version'] = data['durable'].get('db_version')
        if 'badges' in data:
            flattened['badge_catalog_path'] = data['badges'].get('catalog_path')

        # Remove None values
        return {k: v for k, v in flattened.items() if v is not None}


class Settings(BaseSettings):
    """Application settings loaded from environment and config files."""

    model_config = SettingsConfigDict(
        env_prefix="MATHQUEST_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)

    # Progress record
    progress_cache_key: str = Field(default="mathquest_progress_v2")
    max_seen_problem_ids: int = Field(default=200, ge=1)
    levelup_badge_step: int = Field(default=5, ge=1)

    # Durable store
    durable_enabled: bool = Field(default=True)
    durable_db_name: str = Field(default="mathquest-db")
    durable_db_version: int = Field(default=1, ge=1)

    # Badge catalog override (YAML); built-in catalog when unset
    badge_catalog_path: Path | None = Field(default=None)

    # Paths
    project_root: Path = Field(default_factory=_find_project_root)
    data_dir: Path | None = Field(default=None)

    @property
    def resolved_data_dir(self) -> Path:
        return self.data_dir or self.project_root / "data"

    @property
    def cache_dir(self) -> Path:
        d = self.resolved_data_dir / "cache"
        d.mkdir(parents=True, exist_ok=True)
        return d

    @property
    def durable_db_path(self) -> Path:
        return self.resolved_data_dir / f"{self.durable_db_name}.sqlite3"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customise settings sources to include YAML file.

        Priority order (highest to lowest):
        1. init_settings (arguments passed to Settings())
        2. env_settings (environment variables)
        3. dotenv_settings (.env file)
        4. YamlSettingsSource (settings.yaml)
        5. file_secret_settings
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlSettingsSource(settings_cls),
            file_secret_settings,
        )


@functools.lru_cache
def get_settings() -> Settings:
    """Get application settings singleton."""
    return Settings()
