from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Sequence

logger = logging.getLogger(__name__)

# Keep diagnostics bounded; ffmpeg can be chatty on broken inputs.
_MAX_DIAGNOSTIC_CHARS = 4000


class MediaToolError(RuntimeError):
    def __init__(self, message: str, *, diagnostics: str = "") -> None:
        super().__init__(message)
        self.diagnostics = diagnostics

    def __str__(self) -> str:
        base = super().__str__()
        if self.diagnostics:
            return f"{base}: {self.diagnostics}"
        return base


class ProbeError(MediaToolError):
    pass


class TranscodeError(MediaToolError):
    pass


class CommandTimeout(Exception):
    pass


@dataclass(frozen=True)
class CommandResult:
    returncode: int
    stdout: str
    stderr: str


def trim_tail(text: str, limit: int = _MAX_DIAGNOSTIC_CHARS) -> str:
    text = (text or "").strip()
    if len(text) <= limit:
        return text
    return text[-limit:]


async def run_command(argv: Sequence[str], *, timeout: float) -> CommandResult:
    """
    Run an external tool from an argument vector (no shell) and capture output.

    The child is bound to the awaiting task: on timeout, or when the task is
    cancelled (client went away, shutdown), the process is killed and reaped
    before the exception propagates.
    """
    process = await asyncio.create_subprocess_exec(
        *argv,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        await _kill(process)
        raise CommandTimeout(f"{argv[0]} exceeded {timeout:.0f}s") from None
    except asyncio.CancelledError:
        await _kill(process)
        raise

    return CommandResult(
        returncode=int(process.returncode or 0),
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=trim_tail(stderr.decode("utf-8", errors="replace")),
    )


async def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    try:
        process.kill()
    except ProcessLookupError:
        return
    await process.wait()
    logger.warning("Killed child process pid=%s", process.pid)
