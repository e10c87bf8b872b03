"""YAML config loading with env var overrides."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel

from pipewatch.settings import Settings
from pipewatch.statuses import ContentType

ENV_PREFIX = "PIPEWATCH_"


class AppConfig(BaseModel):
    settings: Settings = Settings()
    # Per-content-type stage order, overriding the built-in pipelines
    pipelines: dict[ContentType, list[str]] = {}


def load_config(config_path: str = "config.yaml") -> AppConfig:
    """Load config from YAML file, then apply env var overrides."""
    load_dotenv()

    data: dict = {}
    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            data = yaml.safe_load(f) or {}

    settings_data: dict = dict(data.get("settings") or {})
    for field_name in Settings.model_fields:
        val = os.environ.get(f"{ENV_PREFIX}{field_name.upper()}")
        if val is not None:
            settings_data[field_name] = val

    # model_validate coerces the env strings to each field's type
    return AppConfig(
        settings=Settings.model_validate(settings_data),
        pipelines=data.get("pipelines") or {},
    )
