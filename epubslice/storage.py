from __future__ import annotations

import shutil
import tempfile
import uuid
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Optional
from urllib.parse import unquote, urlparse

DEFAULT_IMAGE_EXT = ".jpg"


@dataclass(frozen=True)
class LocalizedAsset:
    uri: str
    name: str
    path: Path

    @property
    def full_name(self) -> str:
        return str(self.path)

    @classmethod
    def create(cls, uri: str, folder: Path, name: str, stream: BinaryIO) -> "LocalizedAsset":
        folder.mkdir(parents=True, exist_ok=True)
        path = folder / name
        with path.open("wb") as handle:
            shutil.copyfileobj(stream, handle)
        return cls(uri=uri, name=name, path=path)


class TempFolder:
    def __init__(self, root: Optional[Path] = None) -> None:
        if root is not None:
            root.mkdir(parents=True, exist_ok=True)
        self.path = Path(tempfile.mkdtemp(prefix="epubslice-", dir=root))

    def cleanup(self) -> None:
        shutil.rmtree(self.path, ignore_errors=True)

    def __enter__(self) -> "TempFolder":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.cleanup()


def image_filename(uri: str, default_ext: str = DEFAULT_IMAGE_EXT) -> str:
    path = unquote(urlparse(uri).path)
    ext = PurePosixPath(path).suffix if path else ""
    if not ext.strip(".").strip():
        ext = default_ext
    return f"{uuid.uuid4().hex}{ext.lower()}"
