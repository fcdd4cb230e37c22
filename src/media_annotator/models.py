"""Data model shared by the scheduler and the per-file job."""

from collections import Counter
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


DESCRIPTION_SEPARATOR = "; "


class MediaKind(StrEnum):
    IMAGE = "image"
    VIDEO = "video"


class Outcome(StrEnum):
    SKIPPED = "skipped"
    ANNOTATED = "annotated"
    EMPTY = "empty"
    FAILED = "failed"
    CANCELLED = "cancelled"


class WorkItem(BaseModel):
    """One media file queued for annotation."""

    model_config = ConfigDict(frozen=True)

    path: Path
    kind: MediaKind

    @property
    def name(self) -> str:
        return self.path.name


class JobResult(BaseModel):
    """Terminal state of one job. Produced exactly once per work item."""

    model_config = ConfigDict(frozen=True)

    item: WorkItem
    outcome: Outcome
    description: str | None = None
    error: str | None = None

    @classmethod
    def skipped(cls, item: WorkItem) -> "JobResult":
        return cls(item=item, outcome=Outcome.SKIPPED)

    @classmethod
    def annotated(cls, item: WorkItem, description: str) -> "JobResult":
        return cls(item=item, outcome=Outcome.ANNOTATED, description=description)

    @classmethod
    def empty(cls, item: WorkItem) -> "JobResult":
        return cls(item=item, outcome=Outcome.EMPTY)

    @classmethod
    def failed(cls, item: WorkItem, error: BaseException) -> "JobResult":
        return cls(item=item, outcome=Outcome.FAILED, error=f"{type(error).__name__}: {error}")

    @classmethod
    def cancelled(cls, item: WorkItem) -> "JobResult":
        return cls(item=item, outcome=Outcome.CANCELLED)


class RunSummary(BaseModel):
    """Aggregate view of a finished batch."""

    results: list[JobResult] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def counts(self) -> dict[Outcome, int]:
        tally = Counter(result.outcome for result in self.results)
        return {outcome: tally.get(outcome, 0) for outcome in Outcome}

    @property
    def failed_items(self) -> list[WorkItem]:
        return [r.item for r in self.results if r.outcome is Outcome.FAILED]


def join_description(fragments: list[str]) -> str:
    """
    Join per-frame fragments into the persisted description, dropping blank ones.

    Examples:
        >>> join_description(["a cat", "  ", "a dog"])
        'a cat; a dog'
        >>> join_description(["", "   "])
        ''

    """
    return DESCRIPTION_SEPARATOR.join(f.strip() for f in fragments if f and f.strip())
