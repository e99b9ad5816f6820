from __future__ import annotations
import asyncio
import os
import signal
from pathlib import Path
from typing import List, Sequence

import structlog

from ..core.models import ProcessOutcome
from ..core.utils import signal_name

log = structlog.get_logger(__name__)

_POSIX = os.name == "posix"
_STREAM_LIMIT = 2 ** 16


class _ExitProtocol(asyncio.subprocess.SubprocessStreamProtocol):
    """Stream protocol that also resolves a future when the child is reaped.

    ``Process.wait()`` does not return until every pipe is closed, which a
    descendant outside our process group can postpone forever.
    """

    def __init__(self, limit: int, loop: asyncio.AbstractEventLoop):
        super().__init__(limit=limit, loop=loop)
        self.exited: asyncio.Future = loop.create_future()

    def process_exited(self) -> None:
        super().process_exited()
        if not self.exited.done():
            self.exited.set_result(None)


class _Watch:
    """Per-process flags flipped by the timer or the output readers."""

    def __init__(self, proc: asyncio.subprocess.Process):
        self.proc = proc
        self.timed_out = False

    def kill(self) -> None:
        try:
            if _POSIX:
                # own session => pgid == pid; reaches grandchildren still
                # holding our pipes even after the leader has exited
                os.killpg(self.proc.pid, signal.SIGKILL)
            elif self.proc.returncode is None:
                self.proc.kill()
        except (ProcessLookupError, PermissionError):
            pass


class ProcessRunner:
    def __init__(self, max_output_bytes: int, chunk_size: int = 4096, drain_grace_s: float = 0.5):
        self.max_output_bytes = max_output_bytes
        self.chunk_size = chunk_size
        self.drain_grace_s = drain_grace_s

    async def run(
        self,
        command: str,
        args: Sequence[str],
        cwd: Path,
        timeout_s: float,
        stdin_data: str = "",
    ) -> ProcessOutcome:
        """
        Run one process to completion and describe how it ended.

        Expected failures (launch error, non-zero exit, timeout, output cap)
        are reported in the outcome, never raised. The run ends when the
        process has been reaped, whether it exited on its own or was killed.
        Output still arriving after that gets ``drain_grace_s`` to reach EOF;
        then the pipes are closed and whatever was read so far is returned.
        """
        argv: List[str] = [command, *args]
        loop = asyncio.get_running_loop()
        try:
            transport, protocol = await loop.subprocess_exec(
                lambda: _ExitProtocol(_STREAM_LIMIT, loop),
                *argv,
                stdin=asyncio.subprocess.PIPE if stdin_data else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(cwd),
                start_new_session=_POSIX,
            )
        except OSError as e:
            log.info("process.spawn_failed", command=command, error=str(e))
            return ProcessOutcome(
                exit_code=None,
                signal=None,
                timed_out=False,
                stdout="",
                stderr=str(e),
                spawn_error=str(e),
            )
        proc = asyncio.subprocess.Process(transport, protocol, loop)

        watch = _Watch(proc)
        out, err = bytearray(), bytearray()
        tasks = [
            asyncio.ensure_future(self._collect(proc.stdout, watch, "stdout", out)),
            asyncio.ensure_future(self._collect(proc.stderr, watch, "stderr", err)),
        ]
        if stdin_data:
            tasks.append(asyncio.ensure_future(self._feed(proc, stdin_data)))

        timer = loop.call_later(timeout_s, self._on_timeout, watch, command, timeout_s)
        try:
            await protocol.exited
        except BaseException:
            # cancelled from outside: never leave the child running
            watch.kill()
            transport.close()
            for t in tasks:
                t.cancel()
            raise
        finally:
            timer.cancel()

        try:
            await self._drain(tasks, watch, transport, command)
        except BaseException:
            transport.close()
            for t in tasks:
                t.cancel()
            raise

        rc = proc.returncode
        return ProcessOutcome(
            exit_code=rc if rc >= 0 else None,
            signal=signal_name(rc),
            timed_out=watch.timed_out,
            stdout=bytes(out).decode("utf-8", errors="replace"),
            stderr=bytes(err).decode("utf-8", errors="replace"),
        )

    async def _drain(self, tasks, watch: _Watch, transport: asyncio.SubprocessTransport, command: str) -> None:
        _, pending = await asyncio.wait(tasks, timeout=self.drain_grace_s)
        if pending:
            # a descendant that left our session still holds the pipes
            log.info("process.pipes_held_open", command=command, pid=watch.proc.pid)
            watch.kill()
            transport.close()
            _, pending = await asyncio.wait(pending, timeout=self.drain_grace_s)
            for t in pending:
                t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    @staticmethod
    def _on_timeout(watch: _Watch, command: str, timeout_s: float) -> None:
        watch.timed_out = True
        log.info("process.timeout", command=command, pid=watch.proc.pid, timeout_s=timeout_s)
        watch.kill()

    @staticmethod
    async def _feed(proc: asyncio.subprocess.Process, data: str) -> None:
        assert proc.stdin is not None
        try:
            proc.stdin.write(data.encode("utf-8"))
            await proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            # child exited (or was killed) without reading everything
            pass
        finally:
            proc.stdin.close()

    async def _collect(self, stream: asyncio.StreamReader, watch: _Watch, name: str, buf: bytearray) -> None:
        full = False
        while True:
            chunk = await stream.read(self.chunk_size)
            if not chunk:
                break
            if full:
                # keep draining so the pipe reaches EOF after the kill
                continue
            buf += chunk
            if len(buf) > self.max_output_bytes:
                del buf[self.max_output_bytes:]
                full = True
                log.info("process.output_capped", stream=name, pid=watch.proc.pid, cap=self.max_output_bytes)
                watch.kill()
