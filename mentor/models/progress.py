"""Job progress model: an ordered set of tagged work units.

A tracker belongs to exactly one analysis call. Observers never see the
tracker itself, only immutable ``ProgressSnapshot`` copies.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Iterable, Protocol


class JobStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


LLM_ANALYSIS = "llm-analysis"
WEB_SEARCH = "web-search"
ARTICLE_PREFIX = "article-"


def article_tag(index: int) -> str:
    return f"{ARTICLE_PREFIX}{index}"


def _clamp(percent: float) -> float:
    return min(max(float(percent), 0.0), 100.0)


@dataclass(frozen=True)
class Job:
    tag: str
    name: str
    status: JobStatus = JobStatus.PENDING
    percent: float = 0.0


@dataclass(frozen=True)
class ProgressSnapshot:
    jobs: tuple[Job, ...] = ()

    @property
    def total_percentage(self) -> float:
        if not self.jobs:
            return 0.0
        return sum(job.percent for job in self.jobs) / len(self.jobs)

    def get(self, tag: str) -> Job | None:
        for job in self.jobs:
            if job.tag == tag:
                return job
        return None


ProgressSink = Callable[[ProgressSnapshot], None]


class _HasJobs(Protocol):
    @property
    def jobs(self) -> Iterable[Job]: ...


class ProgressTracker:
    def __init__(self, jobs: Iterable[Job] | None = None):
        self._jobs: list[Job] = list(jobs or [])

    @property
    def jobs(self) -> tuple[Job, ...]:
        return tuple(self._jobs)

    def _index(self, tag: str) -> int:
        for idx, job in enumerate(self._jobs):
            if job.tag == tag:
                return idx
        return -1

    def get(self, tag: str) -> Job | None:
        idx = self._index(tag)
        return self._jobs[idx] if idx >= 0 else None

    def upsert_job(self, tag: str, status: JobStatus, percent: float = 0.0) -> Job:
        """Create the job (named after its tag) if absent, else update it in place."""
        idx = self._index(tag)
        if idx < 0:
            job = Job(tag=tag, name=tag, status=status, percent=_clamp(percent))
            self._jobs.append(job)
            return job
        job = replace(self._jobs[idx], status=status, percent=_clamp(percent))
        self._jobs[idx] = job
        return job

    def rename(self, tag: str, name: str) -> None:
        idx = self._index(tag)
        if idx >= 0:
            self._jobs[idx] = replace(self._jobs[idx], name=name)

    def add_job(self, job: Job) -> None:
        idx = self._index(job.tag)
        if idx >= 0:
            self._jobs[idx] = job
        else:
            self._jobs.append(job)

    def insert_before(self, reference_tag: str, job: Job) -> None:
        """Insert ``job`` directly before ``reference_tag``; append if the reference is unknown.

        An existing job with the same tag is moved rather than duplicated.
        """
        existing = self._index(job.tag)
        if existing >= 0:
            del self._jobs[existing]
        idx = self._index(reference_tag)
        if idx < 0:
            self._jobs.append(job)
        else:
            self._jobs.insert(idx, job)

    def merge(self, other: _HasJobs | None, *, before: str | None = None) -> None:
        """Fold another tracker (or snapshot) into this one.

        Known tags keep their position and take the other's name, status and
        percent. New tags land before the next tag of ``other`` that is already
        known here, else before ``before`` when present, else at the end.
        """
        if other is None:
            return
        incoming = list(other.jobs)
        for pos, job in enumerate(incoming):
            idx = self._index(job.tag)
            if idx >= 0:
                self._jobs[idx] = job
                continue
            anchor = next(
                (later.tag for later in incoming[pos + 1:] if self._index(later.tag) >= 0),
                None,
            )
            if anchor is None and before is not None and self._index(before) >= 0:
                anchor = before
            if anchor is None:
                self._jobs.append(job)
            else:
                self._jobs.insert(self._index(anchor), job)

    def to_snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(jobs=tuple(self._jobs))

    def snapshot(self, sink: ProgressSink | None) -> ProgressSnapshot:
        snap = self.to_snapshot()
        if sink is not None:
            sink(snap)
        return snap
