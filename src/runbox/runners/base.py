from __future__ import annotations
from pathlib import Path
from typing import List, Optional

from ..core.models import (
    CompileError,
    Completed,
    JobRequest,
    JobResult,
    ProcessOutcome,
    RunError,
)
from ..isolation.firejail import SandboxPrefix
from ..runner.process import ProcessRunner


class LanguagePipeline:
    """
    Compile (optional) + run stages for one language.

    Subclasses only say which file to write and which argv each stage uses;
    how stage outcomes become a JobResult is the same for every language.
    Each stage gets its own full timeout.
    """

    source_name: str = ""

    def compile_command(self, workspace: Path) -> Optional[List[str]]:
        return None

    def run_command(self, workspace: Path) -> List[str]:
        raise NotImplementedError

    def write_source(self, workspace: Path, code: str) -> Path:
        src = workspace / self.source_name
        src.write_text(code, encoding="utf-8")
        return src

    async def run(
        self,
        runner: ProcessRunner,
        prefix: SandboxPrefix,
        workspace: Path,
        request: JobRequest,
        timeout_s: float,
    ) -> JobResult:
        self.write_source(workspace, request.source_code)

        compile_argv = self.compile_command(workspace)
        if compile_argv is not None:
            argv = prefix.wrap(compile_argv, workspace)
            res = await runner.run(argv[0], argv[1:], workspace, timeout_s)
            failure = compile_failure(res)
            if failure is not None:
                return failure

        argv = prefix.wrap(self.run_command(workspace), workspace)
        res = await runner.run(argv[0], argv[1:], workspace, timeout_s, request.stdin_data)
        return run_result(res)


def compile_failure(res: ProcessOutcome) -> Optional[CompileError]:
    if res.timed_out:
        return CompileError("Compilation timed out", timed_out=True)
    if res.exit_code != 0:
        return CompileError(res.stderr or res.stdout or "Compilation error")
    return None


def run_result(res: ProcessOutcome) -> JobResult:
    if res.timed_out:
        return RunError("Execution timed out")
    if not res.launched:
        return RunError(res.spawn_error or "Execution failed to start")
    # non-zero exit is the user program's business, not an error here
    return Completed(stdout=res.stdout, stderr=res.stderr, exit_code=res.exit_code)
