"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Constructor arguments  (CLI flags)
  2. Environment variables  (PAGEWRIGHT__BUILD__DEV=true)
  3. pagewright.yaml        (searched in cwd, then platform config dir)
  4. Hardcoded defaults

The config file is optional: all fields have defaults. The data
file that feeds the templates is not configuration; see ``pagewright.data``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

CONFIG_FILE_NAME = "pagewright.yaml"
DEFAULT_CHUNK_SIZE = 500


def _find_config_file() -> str | None:
    """Return the path of the first pagewright.yaml found, or None."""
    candidates = [
        Path(CONFIG_FILE_NAME),
        Path(platformdirs.user_config_dir("pagewright")) / CONFIG_FILE_NAME,
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class SiteSettings(BaseModel):
    src: str = "."
    views: str = "views"
    output: str = "public"
    data_file: str = "pagewright.data.json"

    @property
    def source_root(self) -> Path:
        return Path(self.src).expanduser().resolve()

    @property
    def views_dir(self) -> Path:
        return self.source_root / self.views

    @property
    def output_dir(self) -> Path:
        return Path(self.output).expanduser().resolve()

    @property
    def data_path(self) -> Path:
        return self.source_root / self.data_file


class SearchSettings(BaseModel):
    index_key_max_size: int = 60
    # Route pattern (same grammar as view names) giving each result's page URL.
    result_url: str = ""


class BuildSettings(BaseModel):
    dev: bool = False
    validate_html: bool = True
    chunk_size: int = Field(default=DEFAULT_CHUNK_SIZE, ge=1)
    search: SearchSettings = SearchSettings()


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "text"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: PAGEWRIGHT__SITE__OUTPUT=dist
        env_prefix="PAGEWRIGHT__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    site: SiteSettings = SiteSettings()
    build: BuildSettings = BuildSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
            # dotenv and file secrets intentionally excluded
        )


def _deep_merge(base: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_settings(config_path: str | Path | None = None, **overrides: Any) -> Settings:
    """Build Settings, optionally from an explicit YAML file.

    An explicit file takes the place of the discovered pagewright.yaml;
    ``overrides`` (nested dicts, e.g. ``build={"dev": True}``) are merged on top.
    """
    init: dict[str, Any] = {}
    if config_path is not None:
        init = YamlConfigSettingsSource(Settings, yaml_file=Path(config_path))()
    return Settings(**_deep_merge(init, overrides))
