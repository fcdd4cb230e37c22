"""
Per-file annotation job.

check -> acquire frames -> annotate (in frame order) -> aggregate -> persist -> cleanup

Images are the one-frame case of the video path. Sampled frames live in a temporary directory
owned by the job and removed on every exit path.
"""

import tempfile
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

from loguru import logger
from pydantic_ai import BinaryContent

from media_annotator.errors import (
    AnnotatorError,
    EmptyDescriptionError,
    ImagePreparationError,
    OracleError,
)
from media_annotator.models import JobResult, MediaKind, WorkItem, join_description
from media_annotator.oracle import OracleClient, prepare_image
from media_annotator.sampler import FrameSampler
from media_annotator.store import MetadataStore


DEFAULT_FRAME_COUNT = 3
FRAME_DIR_PREFIX = "media-annotator-"


class AnnotationJob:
    """
    Run the full annotation pipeline for one work item.

    Args:
        store: Metadata store used for the idempotency check and the final write
        oracle: Client that describes one prepared image
        sampler: Frame sampler used for videos
        frame_count: Frames sampled per video
        prepare: Turns a still image path into the oracle payload
        temp_root: Parent directory for sampled frames (system default when None)
        cancel_event: When set, the job stops at the next step or frame boundary

    """

    def __init__(
        self,
        store: MetadataStore,
        oracle: OracleClient,
        sampler: FrameSampler,
        *,
        frame_count: int = DEFAULT_FRAME_COUNT,
        prepare: Callable[[Path], BinaryContent] = prepare_image,
        temp_root: Path | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        if frame_count < 1:
            msg = f"frame_count must be positive, got {frame_count}"
            raise ValueError(msg)
        self.store = store
        self.oracle = oracle
        self.sampler = sampler
        self.frame_count = frame_count
        self.prepare = prepare
        self.temp_root = temp_root
        self.cancel_event = cancel_event

    def __call__(self, item: WorkItem) -> JobResult:
        with logger.contextualize(file=item.name, kind=item.kind.value):
            try:
                return self._run(item)
            except AnnotatorError as exc:
                logger.error("file_failed", error=str(exc), error_type=type(exc).__name__)
                return JobResult.failed(item, exc)

    def _cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    @contextmanager
    def _frames(self, item: WorkItem) -> Iterator[list[Path]]:
        if item.kind is MediaKind.IMAGE:
            yield [item.path]
            return

        with tempfile.TemporaryDirectory(prefix=FRAME_DIR_PREFIX, dir=self.temp_root) as tmp:
            logger.info("extracting_frames_from_video", count=self.frame_count)
            yield self.sampler.sample(item.path, self.frame_count, Path(tmp))
        logger.debug("sampled_frames_removed")

    def _annotate(self, frames: list[Path]) -> list[str]:
        """
        Describe each frame in order, omitting frames that could not be prepared or described.

        Raises:
            AnnotatorError: when every frame failed to decode or with a request error (the last
                one is raised).

        """
        fragments: list[str] = []
        errors: list[AnnotatorError] = []
        for index, frame in enumerate(frames, start=1):
            if self._cancelled():
                break
            try:
                payload = self.prepare(frame)
                fragments.append(self.oracle.describe(payload))
            except EmptyDescriptionError:
                logger.warning("empty_description_for_frame", frame=index, frames=len(frames))
            except (ImagePreparationError, OracleError) as exc:
                logger.warning(
                    "frame_annotation_failed",
                    frame=index,
                    frames=len(frames),
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                errors.append(exc)

        if errors and len(errors) == len(frames):
            raise errors[-1]
        return fragments

    def _run(self, item: WorkItem) -> JobResult:
        fields = self.store.read(item.path)
        if self.store.is_annotated(fields):
            logger.info("already_annotated_skipping")
            return JobResult.skipped(item)

        if self._cancelled():
            return JobResult.cancelled(item)

        with self._frames(item) as frames:
            fragments = self._annotate(frames)
            if self._cancelled():
                logger.warning("job_cancelled", described=len(fragments))
                return JobResult.cancelled(item)

            description = join_description(fragments)
            if not description:
                logger.warning("no_description_generated")
                return JobResult.empty(item)

            self.store.write(item.path, description)
            logger.info("description_written", description=description)
            return JobResult.annotated(item, description)
