from __future__ import annotations

import math
from pathlib import Path

from lecture_pipeline.media.process import CommandTimeout, ProbeError, run_command


def seconds_to_minutes(seconds: float) -> int:
    """Round to whole seconds, then to whole minutes (half-up both times)."""
    whole_seconds = math.floor(float(seconds) + 0.5)
    return int(math.floor(whole_seconds / 60 + 0.5))


class MediaInspector:
    """Reads container-level metadata with ffprobe."""

    def __init__(self, *, ffprobe_bin: str = "ffprobe", timeout_seconds: float = 60.0) -> None:
        self._ffprobe_bin = ffprobe_bin
        self._timeout = float(timeout_seconds)

    def _duration_cmd(self, path: Path) -> list[str]:
        return [
            self._ffprobe_bin,
            "-v",
            "error",
            "-show_entries",
            "format=duration",
            "-of",
            "default=noprint_wrappers=1:nokey=1",
            str(path),
        ]

    async def probe_duration(self, path: Path) -> float:
        try:
            result = await run_command(self._duration_cmd(path), timeout=self._timeout)
        except CommandTimeout as e:
            raise ProbeError("ffprobe timed out", diagnostics=str(e)) from e
        except OSError as e:
            raise ProbeError("ffprobe could not be started", diagnostics=str(e)) from e

        if result.returncode != 0:
            raise ProbeError(f"ffprobe exited with status {result.returncode}", diagnostics=result.stderr)

        raw = result.stdout.strip().splitlines()
        value = raw[0].strip() if raw else ""
        try:
            duration = float(value)
        except ValueError:
            raise ProbeError("ffprobe reported no usable duration", diagnostics=value or result.stderr) from None

        # Zero, negative, NaN and inf all mean the container could not be read.
        if not math.isfinite(duration) or duration <= 0:
            raise ProbeError("ffprobe reported no usable duration", diagnostics=value)
        return duration
