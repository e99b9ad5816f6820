from __future__ import annotations
import os
import shutil
from pathlib import Path

import structlog

from ..core.utils import new_job_id

log = structlog.get_logger(__name__)


class WorkspaceRootError(RuntimeError):
    pass


class WorkspaceManager:
    """
    Ephemeral per-job directories on the local filesystem:
      <root>/<job_id>/
        ├─ <source file>   (code sent by the caller)
        └─ build artifacts (binaries, .class files)
    Nothing here outlives the job that allocated it.
    """

    def __init__(self, root: Path):
        # always absolute, pipelines hand these paths to child processes
        self.root = root if root.is_absolute() else root.resolve()
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WorkspaceRootError(f"cannot create workspace root {self.root}: {e}") from e
        if not self.root.is_dir() or not os.access(self.root, os.W_OK | os.X_OK):
            raise WorkspaceRootError(f"workspace root {self.root} is not writable")

    def allocate(self, job_id: str | None = None) -> Path:
        p = self.root / (job_id or new_job_id())
        p.mkdir(exist_ok=False)
        return p

    def release(self, path: Path) -> None:
        """
        Remove a workspace tree. Failures are logged, never raised: an orphaned
        directory must not fail the job.
        """
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            log.warning("workspace.release_failed", path=str(path), error=str(e))
