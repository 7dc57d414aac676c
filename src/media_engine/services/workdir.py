"""Per-task working directories.

Each task owns ``{root}/{YYYYMMDD}/{task_id}``; nothing else writes there, so
no locking is needed. Files are index-named so parallel stages never collide.
"""

import shutil
from datetime import datetime
from pathlib import Path

from media_engine.config import settings
from media_engine.domain.enums import SegmentKind
from media_engine.domain.models import Segment, utcnow

# Scratch files that are never published
SCRATCH_SUFFIXES = {".part", ".txt"}


class WorkDirectory:
    """Working directory of a single task."""

    def __init__(
        self,
        task_id: str,
        root: Path,
        public_base: str,
        when: datetime,
    ) -> None:
        self.task_id = task_id
        self.date = when.strftime("%Y%m%d")
        self.path = root / self.date / task_id
        self._public_base = public_base.rstrip("/")

    def ensure(self) -> Path:
        self.path.mkdir(parents=True, exist_ok=True)
        return self.path

    def file(self, name: str) -> Path:
        return self.path / name

    def public_url(self, name: str) -> str:
        """URL under which the web server exposes a work directory file."""
        return f"{self._public_base}/{self.date}/{self.task_id}/{name}"

    def segment(self, kind: SegmentKind, index: int, extension: str) -> Segment:
        name = f"{kind.value}_{index}.{extension.lstrip('.')}"
        return Segment(task_id=self.task_id, kind=kind, index=index, path=self.file(name))

    def files(self) -> list[Path]:
        """Published files, excluding scratch files."""
        if not self.path.exists():
            return []
        return sorted(
            p for p in self.path.iterdir() if p.is_file() and p.suffix not in SCRATCH_SUFFIXES
        )

    def remove(self) -> None:
        shutil.rmtree(self.path, ignore_errors=True)


class WorkDirectoryFactory:
    """Creates work directories rooted at the configured location."""

    def __init__(
        self,
        root: Path | None = None,
        public_prefix: str | None = None,
        app_url: str | None = None,
    ) -> None:
        self.root = root or settings.work_root
        prefix = public_prefix if public_prefix is not None else settings.work_public_prefix
        base = (app_url if app_url is not None else settings.app_url).rstrip("/")
        self.public_base = f"{base}{prefix}"

    def for_task(self, task_id: str, when: datetime | None = None) -> WorkDirectory:
        return WorkDirectory(task_id, self.root, self.public_base, when or utcnow())
