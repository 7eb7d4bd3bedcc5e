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
    return Path(__file__).resolve().parent.parent.parent


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
        if 'storage' in data:
            flattened['data_dir'] = data['storage'].get('data_dir')
            flattened['max_update_retries'] = data['storage'].get('max_update_retries')
        if 'progress' in data:
            progress = data['progress']
            flattened['streak_timezone'] = progress.get('streak_timezone')
            flattened['listening_xp'] = progress.get('listening_xp')
            flattened['assignment_xp'] = progress.get('assignment_xp')
            flattened['badge_catalog_path'] = progress.get('badge_catalog_path')
        if 'leaderboard' in data:
            flattened['weekly_window_days'] = data['leaderboard'].get('weekly_window_days')
            flattened['leaderboard_limit'] = data['leaderboard'].get('limit')

        # Remove None values
        return {k: v for k, v in flattened.items() if v is not None}


class Settings(BaseSettings):
    """Application settings loaded from environment and config files."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Storage
    data_dir: Path | None = Field(default=None)
    max_update_retries: int = Field(default=3, ge=1)

    # Progress rules
    streak_timezone: str = Field(default="UTC")
    listening_xp: int = Field(default=10, ge=0)
    assignment_xp: int = Field(default=50, ge=0)
    badge_catalog_path: Path | None = Field(default=None)

    # Leaderboard
    weekly_window_days: int = Field(default=7, ge=1)
    leaderboard_limit: int = Field(default=50, ge=1)

    # Paths
    project_root: Path = Field(default_factory=_find_project_root)

    @property
    def storage_dir(self) -> Path:
        d = self.data_dir or self.project_root / "data"
        d.mkdir(parents=True, exist_ok=True)
        return d

    @property
    def profiles_dir(self) -> Path:
        d = self.storage_dir / "user_profiles"
        d.mkdir(parents=True, exist_ok=True)
        return d

    @property
    def quiz_history_dir(self) -> Path:
        d = self.storage_dir / "quiz_history"
        d.mkdir(parents=True, exist_ok=True)
        return d

    @property
    def badge_catalog_file(self) -> Path:
        return self.badge_catalog_path or self.project_root / "config" / "badges.yaml"

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
