from __future__ import annotations
from typing import Any, Dict, Optional

import structlog

from ..core.models import (
    InternalError,
    Job,
    JobRequest,
    JobResult,
    Language,
    Rejected,
    RequestRejected,
)
from ..core.utils import new_job_id
from ..isolation.firejail import SandboxPrefix
from ..runner.process import ProcessRunner
from ..runners.base import LanguagePipeline
from ..runners.registry import build_pipelines
from ..settings import Settings
from .job_queue import JobQueue
from .workspace import WorkspaceManager

log = structlog.get_logger(__name__)


class JobService:
    """
    Glue between request validation, workspaces, the job queue and the
    language pipelines. Every accepted job ends with its workspace removed.
    """

    def __init__(
        self,
        settings: Settings,
        runner: Optional[ProcessRunner] = None,
        prefix: Optional[SandboxPrefix] = None,
        pipelines: Optional[Dict[Language, LanguagePipeline]] = None,
    ):
        self.settings = settings
        self.workspaces = WorkspaceManager(settings.workspace_root)
        self.runner = runner or ProcessRunner(settings.max_output_bytes)
        self.prefix = prefix if prefix is not None else SandboxPrefix.detect(settings.sandbox_prefix_enabled)
        self.pipelines = pipelines or build_pipelines(settings)
        self.queue = JobQueue(settings.concurrency_limit)

    async def execute(self, language: Any, code: Any, stdin: Any = "") -> JobResult:
        try:
            request = JobRequest.parse(language, code, stdin)
        except RequestRejected as e:
            return Rejected(e.reason)

        job_id = new_job_id()
        try:
            workspace = self.workspaces.allocate(job_id)
        except OSError as e:
            log.error("job.internal_error", job_id=job_id, stage="allocate", error=str(e))
            return InternalError(f"Internal server error: {e}")

        job = Job(id=job_id, request=request, workspace=workspace)
        log.info("job.accepted", job_id=job.id, language=request.language.value)
        return await self.queue.run(lambda: self._handle(job))

    async def _handle(self, job: Job) -> JobResult:
        try:
            pipeline = self.pipelines[job.request.language]
            result = await pipeline.run(
                self.runner,
                self.prefix,
                job.workspace,
                job.request,
                self.settings.timeout_s,
            )
        except Exception as e:
            log.exception("job.internal_error", job_id=job.id)
            result = InternalError(f"Internal server error: {e}")
        finally:
            self.workspaces.release(job.workspace)
        log.info("job.finished", job_id=job.id, result=type(result).__name__)
        return result
