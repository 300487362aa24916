from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .storage import TempFolder
from .transport import HttpClient

DEFAULT_JOBS = 8
SETTINGS_KEYS = ("jobs", "retries", "timeout", "user_agent", "no_image", "base_url")


@dataclass(frozen=True)
class SliceOptions:
    start: Optional[int] = None
    end: Optional[int] = None
    start_name: Optional[str] = None
    end_name: Optional[str] = None
    no_image: bool = False


@dataclass(frozen=True)
class MediaConfig:
    client: HttpClient
    temp_folder: TempFolder
    max_workers: int = DEFAULT_JOBS
    no_image: bool = False


def load_settings(path: Optional[Path]) -> dict:
    if path is None:
        return {}
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Settings must be a JSON object: {path}")
    return {key: data[key] for key in SETTINGS_KEYS if data.get(key) is not None}
