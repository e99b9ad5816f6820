from __future__ import annotations
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

import structlog

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SandboxPrefix:
    """
    Optional firejail wrapper around every compile/run command.
    Decided once at startup; carries no per-job state.
    """
    tool: Optional[str] = None

    @property
    def active(self) -> bool:
        return self.tool is not None

    @classmethod
    def detect(cls, enabled: bool = True) -> "SandboxPrefix":
        if not enabled or not sys.platform.startswith("linux"):
            return cls(None)
        tool = shutil.which("firejail")
        if tool:
            log.info("sandbox.firejail_detected", path=tool)
            return cls(tool)
        log.info("sandbox.firejail_missing")
        return cls(None)

    def wrap(self, argv: Sequence[str], workspace: Path) -> List[str]:
        if not self.active:
            return list(argv)
        # --private=<ws>: the job only sees its own workspace as $HOME
        return [self.tool, "--quiet", f"--private={workspace}", "--", *argv]
