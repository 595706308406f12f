"""Job-scoped temporary file arena.

Every temporary file a render job touches (input copy, cue PNGs, batch
videos) is issued by one ``TempArena``. Files can be released early; whatever
is still live is deleted when the arena closes. Each path is deleted at most
once.
"""

import logging
import os
import shutil
import tempfile
import threading
import uuid
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class TempArena:
    """Owns a private scratch directory and the files issued inside it."""

    def __init__(self, prefix: str = "captionburn_", parent_dir: Optional[str] = None):
        if parent_dir:
            os.makedirs(parent_dir, exist_ok=True)
        self.root = Path(tempfile.mkdtemp(prefix=prefix, dir=parent_dir))
        self.issued: list[Path] = []
        self._live: set[Path] = set()
        self._lock = threading.Lock()
        self._closed = False

    def __enter__(self) -> "TempArena":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def create(self, suffix: str = "", name: str = "tmp") -> Path:
        """Reserve a unique path inside the arena (the file is not created)."""
        path = self.root / f"{name}_{uuid.uuid4().hex[:12]}{suffix}"
        with self._lock:
            if self._closed:
                raise RuntimeError("Arena is already closed")
            self.issued.append(path)
            self._live.add(path)
        return path

    def release(self, path: Path) -> None:
        """Delete an issued file now. Releasing twice is a no-op."""
        with self._lock:
            if path not in self._live:
                return
            self._live.discard(path)
        self._unlink(path)

    def is_live(self, path: Path) -> bool:
        with self._lock:
            return path in self._live

    @property
    def live_count(self) -> int:
        with self._lock:
            return len(self._live)

    def close(self) -> None:
        """Delete every live file and the scratch directory."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            remaining = list(self._live)
            self._live.clear()

        for path in remaining:
            self._unlink(path)
        shutil.rmtree(self.root, ignore_errors=True)
        logger.debug(f"[ARENA] Closed {self.root} ({len(remaining)} files removed at close)")

    def _unlink(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"[ARENA] Could not delete temporary file {path}: {e}")
