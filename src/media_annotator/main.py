#!/usr/bin/env python3
"""
Media Annotator: CLI app to describe images and videos with AI and store the text in metadata.

Every matching file in a directory is sent to a vision-language model (videos as a few sampled
frames) and the description is written in place to the file's Comment, Keywords and
ImageDescription tags. Files that already carry a Comment are skipped, so re-running over the
same folder only picks up new files.

Requirements:
 - Exiftool installed and available in PATH.
 - ffmpeg and ffprobe in PATH for video files.
 - OPENAI_API_KEY set in the environment (or in a .env file in the working directory).

"""
# ruff: noqa: PLR0913

import os
import sys
import threading
from datetime import UTC, datetime
from functools import partial
from pathlib import Path
from typing import Annotated, Literal

from cyclopts import App, Parameter, validators
from dotenv import load_dotenv
from loguru import logger

from media_annotator.discovery import IMAGE_EXTENSIONS, VIDEO_EXTENSIONS, scan_directory
from media_annotator.errors import ConfigurationError
from media_annotator.job import DEFAULT_FRAME_COUNT, AnnotationJob
from media_annotator.models import Outcome, RunSummary
from media_annotator.oracle import (
    DEFAULT_DIMENSIONS,
    DEFAULT_JPEG_QUALITY,
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    OracleClient,
    create_agent,
    prepare_image,
)
from media_annotator.sampler import DEFAULT_FRAME_WIDTH, FrameSampler
from media_annotator.scheduler import DEFAULT_CONCURRENCY, Scheduler
from media_annotator.store import MetadataStore


LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL", "OFF"]

load_dotenv(override=False)

# Configuration defaults
API_KEY_ENV = "OPENAI_API_KEY"
DEFAULT_MODEL_NAME = os.getenv("MODEL_NAME", "gpt-4o-mini")
DEFAULT_BASE_URL = os.getenv("OPENAI_BASE_URL")
DEFAULT_WORKERS = int(os.getenv("CONCURRENCY", str(DEFAULT_CONCURRENCY)))
DEFAULT_FRAMES = int(os.getenv("FRAME_COUNT", str(DEFAULT_FRAME_COUNT)))


# Cyclopts app
__version__ = "0.1.0"
app = App(
    name="media-annotator",
    version=__version__,
)


def setup_logging(
    file_log_level: LogLevel = "DEBUG",
    console_log_level: LogLevel = "INFO",
    log_folder: Path = Path("logs"),
) -> None:
    """
    Configure Loguru for both console and file logging.

    Args:
        file_log_level: Log level for file (use 'OFF' to disable)
        console_log_level: Log level for console (use 'OFF' to disable)
        log_folder: Directory where log files are stored

    """
    logger.remove()

    if file_log_level != "OFF":
        log_folder.mkdir(parents=True, exist_ok=True)
        log_file = log_folder / Path(
            datetime.now(tz=UTC).strftime("%Y%m%d%H%M%S-media_annotator.log"),
        )
        logger.add(
            log_file,
            level=file_log_level,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "{thread.name:<12} | "
                "{name:<8}:{function:<25}:{line:>4} | "
                "{message:<40} | "
                "{extra}"
            ),
            rotation="500 MB",
            retention="10 days",
            compression="zip",
        )

    if console_log_level != "OFF":
        logger.add(
            sys.stderr,
            level=console_log_level,
            colorize=True,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                "<level>{level: <7}</level> | "
                "<level>{message:<40.50}</level> | "
                "<yellow>{extra}</yellow>"
            ),
        )


def load_api_key(env_var: str = API_KEY_ENV) -> str:
    """
    Return the oracle credential from the environment.

    Raises:
        ConfigurationError: if the variable is missing or blank.

    """
    api_key = os.getenv(env_var, "").strip()
    if not api_key:
        msg = f"{env_var} is not set; export it or add it to a .env file"
        raise ConfigurationError(msg)
    return api_key


def report_summary(summary: RunSummary) -> None:
    """Log the per-outcome counts and the files that failed."""
    counts = summary.counts
    logger.info(
        "processing_summary",
        total_files=summary.total,
        annotated=counts[Outcome.ANNOTATED],
        skipped=counts[Outcome.SKIPPED],
        empty=counts[Outcome.EMPTY],
        failed=counts[Outcome.FAILED],
        cancelled=counts[Outcome.CANCELLED],
    )
    if summary.failed_items:
        logger.error("files_failed", files=[str(item.path) for item in summary.failed_items])


@app.default
def annotate(
    directory: Annotated[
        Path,
        Parameter(
            validator=validators.Path(exists=True, file_okay=False, dir_okay=True),
            help="Directory containing the images and videos to annotate",
        ),
    ] = Path("./images"),
    *,
    concurrency: Annotated[
        int,
        Parameter(
            name=("--concurrency", "-c"),
            validator=validators.Number(gte=1),
            help="Number of files processed at the same time",
        ),
    ] = DEFAULT_WORKERS,
    frames: Annotated[
        int,
        Parameter(
            name=("--frames",),
            validator=validators.Number(gte=1),
            help="Frames sampled from each video",
        ),
    ] = DEFAULT_FRAMES,
    model_name: Annotated[
        str,
        Parameter(
            name=("--model", "-m"),
            help="Vision-language model name",
        ),
    ] = DEFAULT_MODEL_NAME,
    api_base_url: Annotated[
        str | None,
        Parameter(name=("--url", "-u"), help="OpenAI-compatible API base URL"),
    ] = DEFAULT_BASE_URL,
    include_videos: Annotated[
        bool,
        Parameter(
            name=("--videos",),
            negative="--no-videos",
            help="Also annotate mp4/mov/avi files from sampled frames",
        ),
    ] = True,
    recursive: Annotated[
        bool,
        Parameter(
            name=("--recursive", "-r"),
            help="Process files in subdirectories recursively",
        ),
    ] = False,
    strict: Annotated[
        bool,
        Parameter(
            name=("--strict",),
            help="Exit with status 1 when any file fails",
        ),
    ] = False,
    frame_width: Annotated[
        int,
        Parameter(
            name=("--frame-width",),
            help="Max width in pixels of frames sampled from videos",
        ),
    ] = DEFAULT_FRAME_WIDTH,
    jpeg_dimensions: Annotated[
        int,
        Parameter(
            name=("--jpeg-dimensions",),
            help="Max dimension in pixels for the resized JPEG sent to the model",
        ),
    ] = DEFAULT_DIMENSIONS,
    jpeg_quality: Annotated[
        int,
        Parameter(
            name=("--jpeg-quality",),
            help="JPEG quality (1-100) for the image sent to the model",
        ),
    ] = DEFAULT_JPEG_QUALITY,
    temperature: Annotated[
        float,
        Parameter(
            name=("--temperature",),
            help="Sampling temperature (0.0-1.0)",
        ),
    ] = DEFAULT_TEMPERATURE,
    max_tokens: Annotated[
        int,
        Parameter(
            name=("--max-tokens",),
            help="Maximum tokens to generate per image",
        ),
    ] = DEFAULT_MAX_TOKENS,
    file_log_level: Annotated[
        LogLevel,
        Parameter(
            name="--file-log-level",
            help="Log level for file (use 'OFF' to disable)",
        ),
    ] = "DEBUG",
    log_folder: Annotated[
        Path,
        Parameter(
            name=("--log-folder",),
            help="Folder where log files are stored",
        ),
    ] = Path("logs"),
    console_log_level: Annotated[
        LogLevel,
        Parameter(
            name="--console-log-level",
            help="Log level for console (use 'OFF' to disable)",
        ),
    ] = "INFO",
) -> None:
    """
    Describe every image and video in a directory and write the text into its metadata.

    Behavior:
    - Files whose Comment tag is already set are skipped.
    - Videos are sampled into a few frames; each frame is described and the descriptions are
        joined with "; ". Frames the model cannot describe are left out.
    - The description is written in place to Comment, Keywords and ImageDescription
        (no backup file).
    - A failing file is logged and the batch continues.

    Exit status: 0 when the batch completes, 1 on missing configuration, or when --strict is
    given and any file failed.

    Examples:
        media-annotator ./photos
        media-annotator ./media -c 10 --frames 5 -r
        media-annotator ./photos --no-videos --strict

    """
    setup_logging(
        file_log_level=file_log_level,
        console_log_level=console_log_level,
        log_folder=log_folder,
    )
    logger.info(
        "starting_media_annotator",
        directory=str(directory),
        concurrency=concurrency,
        frames=frames,
        model=model_name,
        api_base_url=api_base_url,
        include_videos=include_videos,
        recursive=recursive,
        strict=strict,
    )

    try:
        api_key = load_api_key()
    except ConfigurationError as exc:
        logger.error("configuration_error", error=str(exc))
        raise SystemExit(1) from exc

    if not directory.is_dir():
        logger.error("media_directory_not_found", directory=str(directory))
        raise SystemExit(1)

    items = scan_directory(
        directory,
        image_extensions=IMAGE_EXTENSIONS,
        video_extensions=VIDEO_EXTENSIONS if include_videos else "",
        recursive=recursive,
    )
    if not items:
        logger.warning("no_media_files_found", directory=str(directory))

    cancel_event = threading.Event()
    oracle = OracleClient(
        partial(create_agent, model_name, api_key=api_key, base_url=api_base_url),
        temperature=temperature,
        max_tokens=max_tokens,
    )
    job = AnnotationJob(
        MetadataStore(),
        oracle,
        FrameSampler(max_width=frame_width),
        frame_count=frames,
        prepare=partial(prepare_image, jpg_quality=jpeg_quality, max_size=jpeg_dimensions),
        cancel_event=cancel_event,
    )
    summary = Scheduler(concurrency, job, cancel_event=cancel_event).run(items)

    report_summary(summary)
    logger.info("processing_complete")

    if strict and summary.failed_items:
        raise SystemExit(1)


if __name__ == "__main__":
    app()
