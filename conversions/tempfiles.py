"""Per-invocation local staging files, removed on every exit path."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

import structlog
from django.conf import settings

logger = structlog.get_logger(__name__)


class TempScope:
    """
    Context manager owning the staging files of one stage invocation.

        with TempScope() as scope:
            src = scope.acquire("input", ".gif")
            dst = scope.acquire("output", ".mp4")
            ...

    Every acquired path is removed when the block exits, whether it returned,
    raised or was interrupted.
    """

    def __init__(self, directory: str | None = None):
        self.directory = directory if directory is not None else settings.PIPELINE_TMP_DIR
        self._handles: list[Path] = []

    def __enter__(self) -> "TempScope":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release_all()
        return False

    @property
    def handles(self) -> tuple[Path, ...]:
        return tuple(self._handles)

    def acquire(self, kind: str, suffix: str = "") -> Path:
        fd, name = tempfile.mkstemp(prefix=f"{kind}-", suffix=suffix, dir=self.directory)
        os.close(fd)
        path = Path(name)
        self._handles.append(path)
        return path

    def release(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError:
            logger.warning("temp_release_failed", path=str(path), exc_info=True)
        if path in self._handles:
            self._handles.remove(path)

    def release_all(self) -> None:
        for path in list(self._handles):
            self.release(path)
