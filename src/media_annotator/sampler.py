"""
Frame sampler: decompose a video into a few evenly spaced still frames with ffmpeg.

Frames are written as small JPEGs into a directory chosen by the caller. The sampler never
deletes them; whoever owns the directory does.
"""

import json
import subprocess
from fractions import Fraction
from pathlib import Path

from loguru import logger

from media_annotator.errors import ExtractionError


DEFAULT_FRAME_WIDTH = 320
DEFAULT_TIMEOUT = 300.0
FRAME_PATTERN = "frame-%03d.jpg"


class FrameSampler:
    """Sample `count` frames roughly evenly across a video, downscaled to a bounded width."""

    def __init__(
        self,
        *,
        ffmpeg: str = "ffmpeg",
        ffprobe: str = "ffprobe",
        max_width: int = DEFAULT_FRAME_WIDTH,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.ffmpeg = ffmpeg
        self.ffprobe = ffprobe
        self.max_width = max_width
        self.timeout = timeout

    def _run(self, cmd: list[str]) -> subprocess.CompletedProcess[str]:
        try:
            result = subprocess.run(  # noqa: S603
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            msg = f"{cmd[0]} not found on PATH"
            raise ExtractionError(msg) from exc
        except subprocess.TimeoutExpired as exc:
            msg = f"{cmd[0]} timed out after {self.timeout}s"
            raise ExtractionError(msg) from exc

        if result.returncode != 0:
            stderr = (result.stderr or "").strip().splitlines()
            detail = stderr[-1] if stderr else "no output"
            msg = f"{cmd[0]} exited with status {result.returncode}: {detail}"
            raise ExtractionError(msg)
        return result

    def count_frames(self, video_path: Path) -> int:
        """
        Return the number of frames in the first video stream.

        Uses the container's nb_frames when present, otherwise duration x average frame rate.
        Returns 0 when neither is available.
        """
        result = self._run(
            [
                self.ffprobe,
                "-v",
                "error",
                "-select_streams",
                "v:0",
                "-show_entries",
                "stream=nb_frames,avg_frame_rate,duration",
                "-of",
                "json",
                str(video_path),
            ],
        )
        try:
            streams = json.loads(result.stdout or "{}").get("streams", [])
        except ValueError as exc:
            msg = f"ffprobe returned invalid JSON for {video_path.name}"
            raise ExtractionError(msg) from exc
        if not streams:
            msg = f"no video stream in {video_path.name}"
            raise ExtractionError(msg)

        stream = streams[0]
        nb_frames = str(stream.get("nb_frames", ""))
        if nb_frames.isdigit() and int(nb_frames) > 0:
            return int(nb_frames)
        try:
            rate = Fraction(str(stream.get("avg_frame_rate", "0/1")))
            duration = float(stream.get("duration", 0.0))
        except (ValueError, ZeroDivisionError):
            return 0
        return int(duration * rate)

    def sample(self, video_path: Path, count: int, output_dir: Path) -> list[Path]:
        """
        Extract `count` frames from a video into `output_dir`.

        Args:
            video_path: Source video
            count: Number of frames wanted (at least 1)
            output_dir: Existing directory owned by the caller

        Returns:
            Frame paths in playback order (at least one, may be fewer than `count` for very short
            videos).

        Raises:
            ExtractionError: if the source is missing, ffmpeg/ffprobe fails, or no frame comes out.

        """
        if count < 1:
            msg = f"frame count must be positive, got {count}"
            raise ValueError(msg)
        if not video_path.is_file():
            msg = f"video not found: {video_path}"
            raise ExtractionError(msg)

        total = self.count_frames(video_path)
        stride = max(total // count, 1)
        logger.debug("sampling_frames", total_frames=total, stride=stride, count=count)

        self._run(
            [
                self.ffmpeg,
                "-nostdin",
                "-loglevel",
                "error",
                "-i",
                str(video_path),
                "-vf",
                f"select='not(mod(n,{stride}))',scale='min({self.max_width},iw)':-2",
                "-fps_mode",
                "vfr",
                "-frames:v",
                str(count),
                str(output_dir / FRAME_PATTERN),
            ],
        )

        frames = sorted(output_dir.glob("frame-*.jpg"))
        if not frames:
            msg = f"ffmpeg produced no frames for {video_path.name}"
            raise ExtractionError(msg)
        logger.info("frames_extracted", count=len(frames))
        return frames
