"""FFmpeg subprocess execution with a wall-clock budget."""

import asyncio
import logging
import time
from dataclasses import dataclass

from quotecast.exceptions import RenderFailedError, RenderTimeoutError

logger = logging.getLogger(__name__)

# Grace period between terminate() and kill()
TERMINATE_GRACE_S = 5.0


@dataclass
class ExecutionResult:
    returncode: int
    elapsed_ms: float
    stderr_tail: str


class FFmpegExecutor:
    """Runs the encoder, keeping only the last stderr_tail_bytes of its log.

    The process is always reaped before run() returns or raises: on timeout
    and on cancellation it is terminated, then killed after a grace period.
    """

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        timeout_s: float = 120.0,
        stderr_tail_bytes: int = 2000,
    ):
        self.ffmpeg_path = ffmpeg_path
        self.timeout_s = timeout_s
        self.stderr_tail_bytes = stderr_tail_bytes

    async def run(self, args: list[str]) -> ExecutionResult:
        cmd = [self.ffmpeg_path, *args]
        logger.debug(f"[RENDER] Executing: {' '.join(cmd[:8])} ...")

        start = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"[RENDER] Failed to start encoder {self.ffmpeg_path}: {e}")
            raise RenderFailedError(f"Could not start encoder: {e}") from e

        tail = bytearray()
        drain_task = asyncio.create_task(self._drain_stderr(proc.stderr, tail))

        try:
            returncode = await asyncio.wait_for(proc.wait(), timeout=self.timeout_s)
        except asyncio.TimeoutError:
            logger.error(f"[RENDER] Encoder timed out after {self.timeout_s}s (pid={proc.pid})")
            await self._stop(proc, drain_task)
            raise RenderTimeoutError(self.timeout_s) from None
        except asyncio.CancelledError:
            logger.warning(f"[RENDER] Encoder cancelled, stopping pid={proc.pid}")
            await self._stop(proc, drain_task)
            raise

        await drain_task
        elapsed_ms = (time.monotonic() - start) * 1000
        stderr_tail = bytes(tail).decode("utf-8", errors="replace")

        if returncode != 0:
            logger.error(f"[RENDER] Encoder exited with code {returncode}: {stderr_tail[-500:]}")
            raise RenderFailedError(returncode=returncode, stderr_tail=stderr_tail)

        logger.info(f"[RENDER] Encoder finished in {elapsed_ms:.0f}ms")
        return ExecutionResult(returncode=returncode, elapsed_ms=elapsed_ms, stderr_tail=stderr_tail)

    async def _drain_stderr(self, stream: asyncio.StreamReader | None, tail: bytearray) -> None:
        if stream is None:
            return
        while True:
            chunk = await stream.read(4096)
            if not chunk:
                break
            tail.extend(chunk)
            overflow = len(tail) - self.stderr_tail_bytes
            if overflow > 0:
                del tail[:overflow]

    async def _stop(self, proc: asyncio.subprocess.Process, drain_task: asyncio.Task) -> None:
        if proc.returncode is None:
            try:
                proc.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(proc.wait(), timeout=TERMINATE_GRACE_S)
            except asyncio.TimeoutError:
                logger.warning(f"[RENDER] Encoder ignored SIGTERM, killing pid={proc.pid}")
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
                await proc.wait()
        drain_task.cancel()
        try:
            await drain_task
        except asyncio.CancelledError:
            pass
