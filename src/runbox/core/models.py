from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional


class Language(str, Enum):
    CPP = "cpp"
    JAVA = "java"
    PYTHON = "python"
    NODE = "node"


class RequestRejected(ValueError):
    """Request is malformed or asks for an unsupported language."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


@dataclass(frozen=True)
class JobRequest:
    language: Language
    source_code: str
    stdin_data: str = ""

    @classmethod
    def parse(cls, language: Any, code: Any, stdin: Any = "") -> "JobRequest":
        if not language or not code:
            raise RequestRejected("language and code are required")
        if not isinstance(language, str) or not isinstance(code, str):
            raise RequestRejected("language and code are required")
        try:
            lang = Language(language.strip().lower())
        except ValueError:
            raise RequestRejected("unsupported language") from None
        # stdin goes through verbatim; "5" and "5\n" are the caller's choice
        stdin_data = stdin if isinstance(stdin, str) else ""
        return cls(language=lang, source_code=code, stdin_data=stdin_data)


@dataclass
class Job:
    id: str
    request: JobRequest
    workspace: Path   # root/<id>, owned by this job only


@dataclass
class ProcessOutcome:
    exit_code: Optional[int]
    signal: Optional[str]
    timed_out: bool
    stdout: str
    stderr: str
    spawn_error: Optional[str] = None  # set only when the process never started

    @property
    def launched(self) -> bool:
        return self.spawn_error is None


# ---- job results ----

@dataclass(frozen=True)
class JobResult:
    pass


@dataclass(frozen=True)
class Rejected(JobResult):
    reason: str


@dataclass(frozen=True)
class CompileError(JobResult):
    message: str
    timed_out: bool = False


@dataclass(frozen=True)
class RunError(JobResult):
    message: str


@dataclass(frozen=True)
class Completed(JobResult):
    stdout: str
    stderr: str
    exit_code: Optional[int]


@dataclass(frozen=True)
class InternalError(JobResult):
    message: str
