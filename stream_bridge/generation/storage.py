from __future__ import annotations

import logging
import mimetypes
import os
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from .models import ArtifactCategory

logger = logging.getLogger(__name__)

MIME_EXTENSIONS: Dict[str, str] = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "text/csv": ".csv",
    "application/json": ".json",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ".xlsx",
}

EXTENSION_CONTENT_TYPES: Dict[str, str] = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".csv": "text/csv",
    ".json": "application/json",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}

ORIGINAL_VARIANT = "original"

VARIANT_LABEL = re.compile(r"^[A-Za-z0-9_-]+$")


def extension_for(mime_type: str) -> str:
    normalized = (mime_type or "").split(";")[0].strip().lower()
    if normalized in MIME_EXTENSIONS:
        return MIME_EXTENSIONS[normalized]
    return mimetypes.guess_extension(normalized) or ".bin"


def is_valid_variant(variant: Optional[str]) -> bool:
    return bool(variant) and VARIANT_LABEL.match(variant) is not None


def content_type_for_path(path: Path) -> str:
    return EXTENSION_CONTENT_TYPES.get(path.suffix.lower(), "application/octet-stream")


@dataclass
class StoragePaths:
    root: Path

    def category_dir(self, category: ArtifactCategory) -> Path:
        return self.root / ("images" if category == ArtifactCategory.IMAGE else "tables")

    def artifact_path(self, category: ArtifactCategory, key: str, extension: str) -> Path:
        return self.category_dir(category) / f"{key}{extension}"

    def variant_path(self, original: Path, variant: str) -> Path:
        if not is_valid_variant(variant):
            raise ValueError(f"Invalid size variant label: {variant!r}")
        return original.with_name(f"{original.stem}_{variant}{original.suffix}")


class ArtifactStorage:
    """
    Manages the on-disk layout of cached artifacts. Writes go through a temp
    file in the destination directory and are renamed into place only after
    an fsync, so a path handed out never points at a partial file.
    """

    def __init__(self, storage_paths: StoragePaths, fsync: bool = True):
        self.paths = storage_paths
        self.fsync = fsync

    def ensure_base_dirs(self) -> None:
        for category in ArtifactCategory:
            self.paths.category_dir(category).mkdir(parents=True, exist_ok=True)

    def write_artifact(self, category: ArtifactCategory, key: str, mime_type: str, data: bytes) -> Path:
        target = self.paths.artifact_path(category, key, extension_for(mime_type))
        self._write_atomic(target, data)
        return target

    def write_variant(self, original: Path, variant: str, data: bytes) -> Path:
        target = self.paths.variant_path(original, variant)
        self._write_atomic(target, data)
        return target

    def find_variant(self, original: Path, variant: Optional[str]) -> Optional[Path]:
        if not variant or variant == ORIGINAL_VARIANT:
            return None
        if not is_valid_variant(variant):
            logger.debug("Ignoring invalid size variant %r for %s", variant, original.name)
            return None
        candidate = self.paths.variant_path(original, variant)
        return candidate if candidate.exists() else None

    def list_variants(self, original: Path) -> List[Path]:
        if not original.parent.exists():
            return []
        return sorted(original.parent.glob(f"{original.stem}_*{original.suffix}"))

    def delete(self, path: Path) -> int:
        """Remove a file and its variants. Returns the number of bytes released on disk."""
        freed = 0
        for candidate in [path, *self.list_variants(path)]:
            try:
                size = candidate.stat().st_size
                candidate.unlink()
                freed += size
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.warning("Failed to delete cached file %s: %s", candidate, exc)
        return freed

    def _write_atomic(self, target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.stem}.", suffix=".part")
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as tmp_file:
                tmp_file.write(data)
                tmp_file.flush()
                if self.fsync:
                    os.fsync(tmp_file.fileno())
            os.replace(tmp_path, target)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise
