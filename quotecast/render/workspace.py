"""Per-job scratch directories."""

import logging
import shutil
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)

WORKSPACE_PREFIX = "quotecast_"


class JobWorkspace:
    """Temporary directory owned by one render job.

    Removed on exit from the ``with`` block unless ownership was handed off
    with detach(), in which case the new owner must call cleanup().
    """

    def __init__(self, temp_root: str | Path, job_hash: str):
        self.temp_root = Path(temp_root)
        self.job_hash = job_hash
        self.path: Path | None = None
        self._detached = False

    def __enter__(self) -> "JobWorkspace":
        self.temp_root.mkdir(parents=True, exist_ok=True)
        self.path = Path(
            tempfile.mkdtemp(prefix=f"{WORKSPACE_PREFIX}{self.job_hash}_", dir=self.temp_root)
        )
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self._detached:
            self.cleanup()

    @property
    def image_path(self) -> Path:
        return self._require_path() / "background.jpg"

    @property
    def output_path(self) -> Path:
        return self._require_path() / "output.mp4"

    def detach(self) -> None:
        self._detached = True

    def cleanup(self) -> None:
        if self.path is None:
            return
        shutil.rmtree(self.path, ignore_errors=True)
        logger.debug(f"[RENDER] Removed workspace {self.path}")
        self.path = None

    def _require_path(self) -> Path:
        if self.path is None:
            raise RuntimeError("Workspace is not active")
        return self.path


def sweep_stale_workspaces(temp_root: str | Path) -> int:
    """Remove job directories left behind by a previous process."""
    root = Path(temp_root)
    if not root.is_dir():
        return 0
    removed = 0
    for entry in root.glob(f"{WORKSPACE_PREFIX}*"):
        if entry.is_dir():
            shutil.rmtree(entry, ignore_errors=True)
            removed += 1
    if removed:
        logger.info(f"[RENDER] Swept {removed} stale job workspace(s) from {root}")
    return removed
