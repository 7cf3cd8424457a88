"""Tests for the job progress tracker and snapshots."""
from mentor.models.progress import (
    LLM_ANALYSIS,
    WEB_SEARCH,
    Job,
    JobStatus,
    ProgressSnapshot,
    ProgressTracker,
    article_tag,
)


def tags(tracker_or_snapshot) -> list[str]:
    return [job.tag for job in tracker_or_snapshot.jobs]


class TestUpsertAndRename:
    def test_upsert_creates_job_named_after_tag(self):
        tracker = ProgressTracker()
        tracker.upsert_job("custom", JobStatus.IN_PROGRESS, 10)

        job = tracker.get("custom")
        assert job.name == "custom"
        assert job.status is JobStatus.IN_PROGRESS
        assert job.percent == 10

    def test_upsert_updates_in_place(self):
        tracker = ProgressTracker([Job("a", "A"), Job("b", "B"), Job("c", "C")])
        tracker.upsert_job("b", JobStatus.COMPLETED, 100)

        assert tags(tracker) == ["a", "b", "c"]
        assert tracker.get("b").name == "B"
        assert tracker.get("b").status is JobStatus.COMPLETED

    def test_upsert_clamps_percent(self):
        tracker = ProgressTracker()
        tracker.upsert_job("x", JobStatus.IN_PROGRESS, 250)
        assert tracker.get("x").percent == 100
        tracker.upsert_job("x", JobStatus.IN_PROGRESS, -5)
        assert tracker.get("x").percent == 0

    def test_rename_absent_tag_is_noop(self):
        tracker = ProgressTracker([Job("a", "A")])
        tracker.rename("missing", "whatever")
        assert tags(tracker) == ["a"]

    def test_rename_existing(self):
        tracker = ProgressTracker([Job("a", "A")])
        tracker.rename("a", "Renamed")
        assert tracker.get("a").name == "Renamed"


class TestInsertBefore:
    def test_places_job_immediately_before_reference(self):
        tracker = ProgressTracker([Job(WEB_SEARCH, "search"), Job(LLM_ANALYSIS, "llm")])
        for i in range(3):
            tracker.insert_before(LLM_ANALYSIS, Job(article_tag(i), f"article {i}"))

        assert tags(tracker) == [WEB_SEARCH, "article-0", "article-1", "article-2", LLM_ANALYSIS]

    def test_reference_at_start(self):
        tracker = ProgressTracker([Job(LLM_ANALYSIS, "llm")])
        tracker.insert_before(LLM_ANALYSIS, Job("first", "first"))
        assert tags(tracker) == ["first", LLM_ANALYSIS]

    def test_unknown_reference_appends(self):
        tracker = ProgressTracker([Job("a", "A")])
        tracker.insert_before("nope", Job("b", "B"))
        assert tags(tracker) == ["a", "b"]

    def test_existing_tag_is_moved_not_duplicated(self):
        tracker = ProgressTracker([Job(LLM_ANALYSIS, "llm"), Job("late", "late")])
        tracker.insert_before(LLM_ANALYSIS, Job("late", "late again"))
        assert tags(tracker) == ["late", LLM_ANALYSIS]
        assert tracker.get("late").name == "late again"


class TestMerge:
    def child(self) -> ProgressTracker:
        return ProgressTracker(
            [
                Job(WEB_SEARCH, "Searching web", JobStatus.COMPLETED, 100),
                Job("article-0", "Processing summary 1", JobStatus.COMPLETED, 100),
                Job("article-1", "Processing summary 2", JobStatus.FAILED, 100),
            ]
        )

    def test_new_jobs_land_before_reference(self):
        parent = ProgressTracker([Job(LLM_ANALYSIS, "llm")])
        parent.merge(self.child(), before=LLM_ANALYSIS)

        assert tags(parent) == [WEB_SEARCH, "article-0", "article-1", LLM_ANALYSIS]

    def test_without_reference_new_jobs_are_appended(self):
        parent = ProgressTracker([Job(LLM_ANALYSIS, "llm")])
        parent.merge(self.child())

        assert tags(parent) == [LLM_ANALYSIS, WEB_SEARCH, "article-0", "article-1"]

    def test_merge_is_idempotent(self):
        once = ProgressTracker([Job(LLM_ANALYSIS, "llm")])
        twice = ProgressTracker([Job(LLM_ANALYSIS, "llm")])
        snapshot = self.child().to_snapshot()

        once.merge(snapshot, before=LLM_ANALYSIS)
        twice.merge(snapshot, before=LLM_ANALYSIS)
        twice.merge(snapshot, before=LLM_ANALYSIS)

        assert once.jobs == twice.jobs

    def test_known_tags_keep_position_and_take_new_state(self):
        parent = ProgressTracker([Job(WEB_SEARCH, "old", JobStatus.IN_PROGRESS, 0), Job(LLM_ANALYSIS, "llm")])
        parent.merge(self.child(), before=LLM_ANALYSIS)

        assert tags(parent)[0] == WEB_SEARCH
        assert parent.get(WEB_SEARCH).status is JobStatus.COMPLETED
        assert parent.get(WEB_SEARCH).name == "Searching web"

    def test_new_tag_goes_before_next_known_tag_from_other(self):
        parent = ProgressTracker([Job("a", "A"), Job("c", "C")])
        other = ProgressTracker([Job("b", "B"), Job("c", "C2")])
        parent.merge(other)

        assert tags(parent) == ["a", "b", "c"]

    def test_merge_none_is_noop(self):
        parent = ProgressTracker([Job("a", "A")])
        parent.merge(None)
        assert tags(parent) == ["a"]


class TestSnapshot:
    def test_total_percentage_is_mean(self):
        snapshot = ProgressSnapshot(
            jobs=(
                Job("a", "A", JobStatus.COMPLETED, 100),
                Job("b", "B", JobStatus.IN_PROGRESS, 50),
                Job("c", "C", JobStatus.PENDING, 0),
                Job("d", "D", JobStatus.FAILED, 100),
            )
        )
        assert snapshot.total_percentage == 62.5

    def test_empty_snapshot_is_zero(self):
        assert ProgressSnapshot().total_percentage == 0.0

    def test_snapshot_is_detached_from_tracker(self):
        received = []
        tracker = ProgressTracker([Job("a", "A")])
        tracker.snapshot(received.append)
        tracker.upsert_job("a", JobStatus.COMPLETED, 100)
        tracker.add_job(Job("b", "B"))

        assert len(received) == 1
        assert tags(received[0]) == ["a"]
        assert received[0].get("a").status is JobStatus.PENDING

    def test_snapshot_without_sink_returns_copy(self):
        tracker = ProgressTracker([Job("a", "A")])
        snapshot = tracker.snapshot(None)
        assert snapshot.get("a").name == "A"
        assert snapshot.get("missing") is None
