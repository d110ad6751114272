import asyncio

from backend.domain import ItemStatus, WorkspaceItem, WorkspaceKind
from backend.infrastructure import InMemoryWorkspaceRepository
from backend.workers.batch import BatchJob, BatchRunner, BatchStep

KIND = WorkspaceKind.GALLERY


def _publish(repository, keys, **overrides):
    items = [WorkspaceItem(key=key, prompt=f"prompt {key}", **overrides.get(key, {})) for key in keys]
    return repository.publish_primary(KIND, {"topic": "t"}, items)


def _statuses(repository):
    return {key: item.status for key, item in repository.get_record(KIND).items.items()}


def test_middle_failure_does_not_stop_the_batch(settings, clock):
    repository = InMemoryWorkspaceRepository()
    generation = _publish(repository, ["a", "b", "c"])
    observed: list[tuple[str, dict]] = []

    def producer(key, result):
        async def produce():
            observed.append((key, _statuses(repository)))
            if isinstance(result, Exception):
                raise result
            return result

        return produce

    job = BatchJob(
        KIND,
        generation,
        [
            BatchStep("a", producer("a", "data:image/png;base64,A")),
            BatchStep("b", producer("b", RuntimeError("model exploded"))),
            BatchStep("c", producer("c", "data:image/png;base64,C")),
        ],
    )

    report = asyncio.run(BatchRunner(repository, settings, sleep=clock.sleep).run(job))

    assert report.completed == ["a", "c"]
    assert report.failed == ["b"]
    assert _statuses(repository) == {
        "a": ItemStatus.COMPLETED,
        "b": ItemStatus.FAILED,
        "c": ItemStatus.COMPLETED,
    }
    # item c starts only after b has been recorded as failed
    key, seen = observed[2]
    assert key == "c"
    assert seen["b"] is ItemStatus.FAILED
    assert seen["c"] is ItemStatus.LOADING
    assert repository.get_record(KIND).items["b"].error == "model exploded"
    assert repository.get_record(KIND).items["c"].image_url == "data:image/png;base64,C"


def test_cooldown_follows_success_only_and_never_trails(settings, clock):
    repository = InMemoryWorkspaceRepository()
    generation = _publish(repository, ["a", "b", "c", "d"])
    results = {"a": "x", "b": None, "c": "y", "d": "z"}

    def producer(key):
        async def produce():
            return results[key]

        return produce

    job = BatchJob(KIND, generation, [BatchStep(key, producer(key)) for key in results])
    report = asyncio.run(BatchRunner(repository, settings, sleep=clock.sleep).run(job))

    assert report.failed == ["b"]
    # after a, after c; none after b (failed) or d (last)
    assert clock.sleeps == [6.0, 6.0]


def test_error_text_is_truncated(settings, clock):
    repository = InMemoryWorkspaceRepository()
    generation = _publish(repository, ["a"])

    async def produce():
        raise RuntimeError("x" * 500)

    asyncio.run(BatchRunner(repository, settings, sleep=clock.sleep).run(BatchJob(KIND, generation, [BatchStep("a", produce)])))

    assert len(repository.get_record(KIND).items["a"].error) == settings.status_limit


def test_superseded_batch_stops_and_its_writes_are_discarded(settings, clock):
    repository = InMemoryWorkspaceRepository()
    generation = _publish(repository, ["a", "b"])
    calls: list[str] = []

    async def supersede():
        calls.append("a")
        # a newer primary result lands while this request is in progress
        _publish(repository, ["a", "b"])
        return "old image"

    async def never():
        calls.append("b")
        return "never"

    job = BatchJob(KIND, generation, [BatchStep("a", supersede), BatchStep("b", never)])
    report = asyncio.run(BatchRunner(repository, settings, sleep=clock.sleep).run(job))

    assert calls == ["a"]
    assert report.superseded is True
    # the dropped result is not counted and earns no cooldown
    assert report.completed == []
    assert clock.sleeps == []
    record = repository.get_record(KIND)
    assert record.generation == generation + 1
    assert record.items["a"].status is ItemStatus.PENDING
    assert record.items["a"].image_url is None


def test_terminal_items_are_not_revisited(settings, clock):
    repository = InMemoryWorkspaceRepository()
    generation = _publish(repository, ["a"], a={"status": ItemStatus.COMPLETED, "image_url": "kept"})

    async def produce():
        return "replacement"

    asyncio.run(BatchRunner(repository, settings, sleep=clock.sleep).run(BatchJob(KIND, generation, [BatchStep("a", produce)])))

    item = repository.get_record(KIND).items["a"]
    assert item.status is ItemStatus.COMPLETED
    assert item.image_url == "kept"


def test_schedule_runs_detached_and_calls_on_done(settings, clock):
    repository = InMemoryWorkspaceRepository()
    repository.try_begin(KIND)
    generation = _publish(repository, ["a"])
    runner = BatchRunner(repository, settings, sleep=clock.sleep)

    async def produce():
        return "img"

    async def main():
        task = runner.schedule(BatchJob(KIND, generation, [BatchStep("a", produce)]), on_done=lambda: repository.release(KIND))
        assert repository.get_record(KIND).in_flight is True
        await runner.join(KIND)
        return task.result()

    report = asyncio.run(main())

    assert report.completed == ["a"]
    assert repository.get_record(KIND).in_flight is False


def test_items_published_into_one_workspace_leave_others_alone(settings, clock):
    repository = InMemoryWorkspaceRepository()
    generation = _publish(repository, ["a"])
    other = repository.get_record(WorkspaceKind.QUIZ)

    async def produce():
        return "img"

    asyncio.run(BatchRunner(repository, settings, sleep=clock.sleep).run(BatchJob(KIND, generation, [BatchStep("a", produce)])))

    assert repository.get_record(WorkspaceKind.QUIZ) == other


def test_superseded_failure_is_dropped_too(settings, clock):
    repository = InMemoryWorkspaceRepository()
    generation = _publish(repository, ["a", "b"])

    async def supersede_then_fail():
        _publish(repository, ["a", "b"])
        raise RuntimeError("late failure")

    async def never():
        raise AssertionError("superseded batch must stop")

    job = BatchJob(KIND, generation, [BatchStep("a", supersede_then_fail), BatchStep("b", never)])
    report = asyncio.run(BatchRunner(repository, settings, sleep=clock.sleep).run(job))

    assert report.superseded is True
    assert report.failed == []
    assert repository.get_record(KIND).items["a"].error is None
