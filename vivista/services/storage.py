"""Blob storage: one directory per video id holding main.mp4, thumb.jpg, meta.json and extra<N> files."""
import logging
import re
import shutil
from pathlib import Path
from typing import BinaryIO

from vivista.services.errors import InvalidAssetId, NotFound, StorageFailure

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024  # 1 MB

VIDEO_FILENAME = "main.mp4"
THUMB_FILENAME = "thumb.jpg"
META_FILENAME = "meta.json"
EXTRA_PREFIX = "extra"
MAX_EXTRA_INDEX = 2**31 - 1  # extra_files.extra_index is a 32-bit INTEGER

ASSET_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
EXTRA_FILENAME_RE = re.compile(rf"^{EXTRA_PREFIX}(\d+)$")


def is_valid_asset_id(asset_id: str | None) -> bool:
    return bool(asset_id) and ASSET_ID_RE.match(asset_id) is not None


def is_valid_extra_index(index: int) -> bool:
    return 0 <= index <= MAX_EXTRA_INDEX


def extra_filename(index: int) -> str:
    return f"{EXTRA_PREFIX}{index}"


class AssetStorage:
    def __init__(self, root: Path):
        self.root = Path(root)

    def asset_dir(self, asset_id: str) -> Path:
        if not is_valid_asset_id(asset_id):
            raise InvalidAssetId()
        return self.root / asset_id

    def write(self, asset_id: str, filename: str, source: BinaryIO) -> int:
        """Copy source into the asset directory (created if absent). Returns bytes written."""
        directory = self.asset_dir(asset_id)
        path = directory / filename
        written = 0
        try:
            directory.mkdir(parents=True, exist_ok=True)
            with path.open("wb") as f:
                while chunk := source.read(CHUNK_SIZE):
                    f.write(chunk)
                    written += len(chunk)
        except OSError as e:
            logger.exception("Writing %s for video %s failed", filename, asset_id)
            raise StorageFailure() from e
        return written

    def read_bytes(self, asset_id: str, filename: str) -> bytes:
        try:
            return (self.asset_dir(asset_id) / filename).read_bytes()
        except FileNotFoundError:
            return b""
        except OSError as e:
            logger.exception("Reading %s for video %s failed", filename, asset_id)
            raise StorageFailure() from e

    def file_path(self, asset_id: str, filename: str) -> Path:
        """Existing file under the asset directory, or NotFound (also for malformed ids)."""
        if not is_valid_asset_id(asset_id):
            raise NotFound()
        path = self.root / asset_id / filename
        if not path.is_file():
            raise NotFound()
        return path

    def extra_indices_on_disk(self, asset_id: str) -> list[int]:
        directory = self.asset_dir(asset_id)
        if not directory.is_dir():
            return []
        indices = []
        for child in directory.iterdir():
            m = EXTRA_FILENAME_RE.match(child.name)
            if m and child.is_file():
                indices.append(int(m.group(1)))
        return sorted(indices)

    def remove(self, asset_id: str, filename: str) -> None:
        try:
            (self.asset_dir(asset_id) / filename).unlink(missing_ok=True)
        except OSError:
            # Stale file stays behind; it is no longer indexed
            logger.warning("Could not remove %s for video %s", filename, asset_id, exc_info=True)

    def remove_asset(self, asset_id: str) -> None:
        directory = self.asset_dir(asset_id)
        try:
            shutil.rmtree(directory)
        except FileNotFoundError:
            pass
        except OSError:
            logger.warning("Could not remove directory of video %s", asset_id, exc_info=True)
