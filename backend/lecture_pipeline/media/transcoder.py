from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from lecture_pipeline.media.process import CommandTimeout, TranscodeError, run_command

logger = logging.getLogger(__name__)

SEGMENT_PATTERN = "segment%05d.ts"
SEGMENT_GLOB = "segment*.ts"


def _segment_index(path: Path) -> int:
    # "segment00042.ts" -> 42; ffmpeg widens past the pad width, so order numerically.
    digits = path.stem[len("segment"):]
    return int(digits) if digits.isdigit() else -1


@dataclass(frozen=True)
class HlsPackage:
    output_dir: Path
    manifest: Path
    segments: list[Path]


class Transcoder:
    """
    Repackages a finished source file into a VOD HLS package.

    Codecs are stream-copied (no re-encode), so sources that are not already
    web-compatible will package fine but fail in the player.
    """

    def __init__(
        self,
        *,
        ffmpeg_bin: str = "ffmpeg",
        segment_seconds: int = 10,
        manifest_name: str = "index.m3u8",
        timeout_seconds: float = 3600.0,
        concurrency: int = 2,
    ) -> None:
        self._ffmpeg_bin = ffmpeg_bin
        self.segment_seconds = int(segment_seconds)
        self.manifest_name = manifest_name
        self._timeout = float(timeout_seconds)
        self._slots = asyncio.Semaphore(int(concurrency))

    def build_command(self, source: Path, output_dir: Path) -> list[str]:
        return [
            self._ffmpeg_bin,
            "-hide_banner",
            "-loglevel",
            "error",
            "-y",
            "-i",
            str(source),
            "-c",
            "copy",
            "-start_number",
            "0",
            "-hls_time",
            str(self.segment_seconds),
            "-hls_list_size",
            "0",
            "-hls_playlist_type",
            "vod",
            "-hls_segment_filename",
            str(output_dir / SEGMENT_PATTERN),
            "-f",
            "hls",
            str(output_dir / self.manifest_name),
        ]

    async def package(self, source: Path, output_dir: Path) -> HlsPackage:
        cmd = self.build_command(source, output_dir)
        async with self._slots:
            logger.info("Packaging %s -> %s", source.name, output_dir)
            try:
                result = await run_command(cmd, timeout=self._timeout)
            except CommandTimeout as e:
                raise TranscodeError("ffmpeg timed out", diagnostics=str(e)) from e
            except OSError as e:
                raise TranscodeError("ffmpeg could not be started", diagnostics=str(e)) from e

        if result.returncode != 0:
            raise TranscodeError(f"ffmpeg exited with status {result.returncode}", diagnostics=result.stderr)

        return self.collect(output_dir, diagnostics=result.stderr)

    def collect(self, output_dir: Path, *, diagnostics: str = "") -> HlsPackage:
        manifest = output_dir / self.manifest_name
        if not manifest.is_file():
            raise TranscodeError("ffmpeg produced no manifest", diagnostics=diagnostics)
        segments = sorted(output_dir.glob(SEGMENT_GLOB), key=lambda p: (_segment_index(p), p.name))
        if not segments:
            raise TranscodeError("ffmpeg produced no segments", diagnostics=diagnostics)
        return HlsPackage(output_dir=output_dir, manifest=manifest, segments=segments)
