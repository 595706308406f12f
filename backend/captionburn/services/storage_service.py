import logging
import os
import shutil
import tempfile
from functools import lru_cache
from pathlib import Path

from captionburn.config import get_settings

logger = logging.getLogger(__name__)


def input_key(job_id: str) -> str:
    return f"jobs/{job_id}/input.mp4"


def output_key(job_id: str) -> str:
    return f"jobs/{job_id}/output.mp4"


def job_prefix(job_id: str) -> str:
    return f"jobs/{job_id}"


class LocalStorageService:
    """Local file storage for job inputs and results."""

    def __init__(self, base_path: str | Path | None = None) -> None:
        self.base_path = Path(base_path or get_settings().local_storage_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _get_full_path(self, storage_key: str) -> Path:
        full_path = (self.base_path / storage_key).resolve()
        if not full_path.is_relative_to(self.base_path.resolve()):
            raise ValueError(f"Storage key escapes storage root: {storage_key}")
        return full_path

    def write_bytes(self, storage_key: str, data: bytes) -> int:
        """Write a file atomically; readers see the old file or the complete new one."""
        full_path = self._get_full_path(storage_key)
        full_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".tmp_", dir=full_path.parent)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_path, full_path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise
        return len(data)

    def read_bytes(self, storage_key: str) -> bytes:
        """Read a stored file. Raises FileNotFoundError if missing."""
        return self._get_full_path(storage_key).read_bytes()

    def delete_prefix(self, prefix: str) -> None:
        """Delete a whole key directory (e.g. every file of one job)."""
        full_path = self._get_full_path(prefix)
        if full_path.is_dir():
            shutil.rmtree(full_path)
        elif full_path.exists():
            full_path.unlink()


@lru_cache
def get_storage_service() -> LocalStorageService:
    return LocalStorageService()
