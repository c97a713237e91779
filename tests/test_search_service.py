from typing import Any, Dict, List

import pytest

from ferret.exceptions import JobSubmissionFailure, ResultFetchFailure
from ferret.models import AsyncJobProgress, LastProcessedState, PlatformState
from ferret.platforms.base import id_ordering_key
from ferret.platforms.twitter import TwitterSearchOptions, TwitterSearchService

from conftest import FakeBackend


def active_state(status: str = "processing", cursor: Any = None, **extra: Any) -> PlatformState:
    return PlatformState(
        latest_processed_id=cursor,
        current_async_job=AsyncJobProgress(
            job_id="job-1", status=status, submitted_at="2024-05-01T11:59:00.000Z"
        ),
        **extra,
    )


def records(*ids: str) -> List[Dict[str, Any]]:
    return [{"ID": i, "Content": f"tweet {i}"} for i in ids]


# ---------- Branch B: submission ----------


@pytest.mark.asyncio
async def test_first_call_submits_job_with_default_page_size(clock: List[str]) -> None:
    backend = FakeBackend(job_id="abc")
    service = TwitterSearchService(backend)

    out = await service.search(TwitterSearchOptions(query="python"), None)

    assert out.items == []
    assert backend.calls == [("submit", "twitter-scraper", "python", 25)]
    job = out.next_state.current_async_job
    assert job.job_id == "abc"
    assert job.status == "submitted"
    assert job.submitted_at == clock[-1]
    assert out.next_state.latest_processed_id is None


@pytest.mark.asyncio
async def test_submission_uses_explicit_page_size(clock: List[str]) -> None:
    backend = FakeBackend()
    service = TwitterSearchService(backend)

    await service.search(TwitterSearchOptions(query="python", page_size=10), None)

    assert backend.calls_of("submit")[0][3] == 10


@pytest.mark.asyncio
async def test_submission_failure_is_recorded_not_raised(clock: List[str]) -> None:
    backend = FakeBackend(job_id=None)
    service = TwitterSearchService(backend)
    state = PlatformState(latest_processed_id="100")

    out = await service.search(TwitterSearchOptions(query="python"), state)

    job = out.next_state.current_async_job
    assert job.status == "error"
    assert job.error_message == "submission failed"
    assert job.job_id.startswith("submission_failed_")
    assert out.next_state.latest_processed_id == "100"


@pytest.mark.asyncio
async def test_submission_exception_from_client_is_recorded(clock: List[str]) -> None:
    backend = FakeBackend(job_id=JobSubmissionFailure("backend returned no job id"))
    service = TwitterSearchService(backend)

    out = await service.search(TwitterSearchOptions(query="python"), None)

    assert out.next_state.current_async_job.status == "error"


@pytest.mark.asyncio
async def test_resubmission_after_error_carries_cursor_forward(clock: List[str]) -> None:
    backend = FakeBackend(job_id="job-2")
    service = TwitterSearchService(backend)
    state = active_state(status="error", cursor="1500")

    out = await service.search(TwitterSearchOptions(query="python"), state)

    submit = backend.calls_of("submit")
    assert len(submit) == 1
    assert submit[0][2] == "python since_id:1500"
    assert out.next_state.latest_processed_id == "1500"
    assert out.next_state.current_async_job.job_id == "job-2"
    assert out.next_state.current_async_job.status == "submitted"
    assert out.next_state.current_async_job.last_checked_at is None


@pytest.mark.asyncio
async def test_done_and_timeout_jobs_are_replaced_by_new_submission(clock: List[str]) -> None:
    for status in ("done", "timeout"):
        backend = FakeBackend(job_id="fresh")
        service = TwitterSearchService(backend)
        out = await service.search(TwitterSearchOptions(query="q"), active_state(status=status))
        assert [c[0] for c in backend.calls] == ["submit"]
        assert out.next_state.current_async_job.job_id == "fresh"


# ---------- Branch A: polling ----------


@pytest.mark.asyncio
async def test_active_job_is_polled_never_resubmitted(clock: List[str]) -> None:
    backend = FakeBackend(statuses=["processing"])
    service = TwitterSearchService(backend)

    out = await service.search(TwitterSearchOptions(query="q"), active_state(status="submitted"))

    assert backend.calls_of("submit") == []
    assert backend.calls == [("status", "twitter-scraper", "job-1")]
    assert out.next_state.current_async_job.status == "processing"


@pytest.mark.asyncio
async def test_repeated_pending_poll_only_changes_last_checked_at(clock: List[str]) -> None:
    backend = FakeBackend(statuses=["pending", "pending"])
    service = TwitterSearchService(backend)
    options = TwitterSearchOptions(query="q")
    state = active_state(status="submitted", cursor="42")

    first = await service.search(options, state)
    second = await service.search(options, first.next_state)

    assert first.items == [] and second.items == []
    assert first.next_state.latest_processed_id == "42"
    assert second.next_state.latest_processed_id == "42"
    a = first.next_state.to_wire()
    b = second.next_state.to_wire()
    assert a["currentAsyncJob"].pop("lastCheckedAt") != b["currentAsyncJob"].pop("lastCheckedAt")
    assert a == b


@pytest.mark.asyncio
async def test_done_fetches_results_and_advances_cursor_to_max_id(clock: List[str]) -> None:
    backend = FakeBackend(statuses=["done"], results=records("5", "9", "3"))
    service = TwitterSearchService(backend)

    out = await service.search(TwitterSearchOptions(query="q"), active_state())

    assert [i.id for i in out.items] == ["5", "9", "3"]
    assert out.next_state.latest_processed_id == "9"
    job = out.next_state.current_async_job
    assert job.status == "done"
    assert job.last_checked_at == clock[-1]
    assert [c[0] for c in backend.calls] == ["status", "results"]


@pytest.mark.asyncio
async def test_cursor_compares_numeric_ids_numerically(clock: List[str]) -> None:
    backend = FakeBackend(statuses=["done"], results=records("9", "10", "100"))
    service = TwitterSearchService(backend)

    out = await service.search(TwitterSearchOptions(query="q"), active_state(cursor="8"))

    assert out.next_state.latest_processed_id == "100"


@pytest.mark.asyncio
async def test_cursor_prefers_external_id(clock: List[str]) -> None:
    results = [
        {"ID": "masa-1", "ExternalID": "1790000000000000001", "Content": "a"},
        {"ID": "masa-2", "ExternalID": "1790000000000000007", "Content": "b"},
    ]
    backend = FakeBackend(statuses=["done"], results=results)
    service = TwitterSearchService(backend)

    out = await service.search(TwitterSearchOptions(query="q"), active_state())

    assert out.next_state.latest_processed_id == "1790000000000000007"


@pytest.mark.asyncio
async def test_cursor_never_moves_backwards(clock: List[str]) -> None:
    backend = FakeBackend(statuses=["done"], results=records("5"))
    service = TwitterSearchService(backend)

    out = await service.search(TwitterSearchOptions(query="q"), active_state(cursor="50"))

    assert len(out.items) == 1
    assert out.next_state.latest_processed_id == "50"


@pytest.mark.asyncio
async def test_done_with_no_results_keeps_cursor(clock: List[str]) -> None:
    backend = FakeBackend(statuses=["done"], results=None)
    service = TwitterSearchService(backend)

    out = await service.search(TwitterSearchOptions(query="q"), active_state(cursor="77"))

    assert out.items == []
    assert out.next_state.latest_processed_id == "77"
    assert out.next_state.current_async_job.status == "done"


@pytest.mark.asyncio
async def test_result_fetch_failure_is_zero_items(clock: List[str]) -> None:
    backend = FakeBackend(statuses=["done"], results=ResultFetchFailure("backend returned no results"))
    service = TwitterSearchService(backend)

    out = await service.search(TwitterSearchOptions(query="q"), active_state(cursor="77"))

    assert out.items == []
    assert out.next_state.latest_processed_id == "77"
    assert out.next_state.current_async_job.status == "done"


@pytest.mark.asyncio
async def test_error_status_marks_job_error(clock: List[str]) -> None:
    backend = FakeBackend(statuses=["error"])
    service = TwitterSearchService(backend)

    out = await service.search(TwitterSearchOptions(query="q"), active_state(cursor="7"))

    job = out.next_state.current_async_job
    assert job.status == "error"
    assert job.error_message == "job status: error"
    assert job.last_checked_at == clock[-1]
    assert out.next_state.latest_processed_id == "7"


@pytest.mark.asyncio
async def test_status_check_failure_marks_job_error(clock: List[str], status_failure) -> None:
    backend = FakeBackend(statuses=[status_failure])
    service = TwitterSearchService(backend)

    out = await service.search(TwitterSearchOptions(query="q"), active_state())

    job = out.next_state.current_async_job
    assert job.status == "error"
    assert "unrecognized job status" in job.error_message


@pytest.mark.asyncio
async def test_unknown_status_from_duck_typed_backend_marks_error(clock: List[str]) -> None:
    backend = FakeBackend(statuses=[None])
    service = TwitterSearchService(backend)

    out = await service.search(TwitterSearchOptions(query="q"), active_state())

    assert out.next_state.current_async_job.status == "error"
    assert out.next_state.current_async_job.error_message == "job status: None"


@pytest.mark.asyncio
async def test_state_extensions_are_preserved(clock: List[str]) -> None:
    backend = FakeBackend(statuses=["processing"])
    service = TwitterSearchService(backend)
    state = active_state(extensions={"label": "ai-news"})

    out = await service.search(TwitterSearchOptions(query="q"), state)

    assert out.next_state.extensions == {"label": "ai-news"}


@pytest.mark.asyncio
async def test_input_state_is_not_mutated(clock: List[str]) -> None:
    backend = FakeBackend(statuses=["done"], results=records("3"))
    service = TwitterSearchService(backend)
    state = active_state(cursor="1")

    await service.search(TwitterSearchOptions(query="q"), state)

    assert state.latest_processed_id == "1"
    assert state.current_async_job.status == "processing"


@pytest.mark.asyncio
async def test_items_are_normalized_with_provenance(clock: List[str]) -> None:
    raw = {
        "ID": "m-1",
        "ExternalID": "1001",
        "Content": "hello",
        "Metadata": {
            "username": "alice",
            "user_id": 42,
            "created_at": "2024-05-01T10:00:00Z",
            "lang": "en",
            "likes": 3,
        },
    }
    backend = FakeBackend(statuses=["done"], results=[raw, {"Content": "no ids"}])
    service = TwitterSearchService(backend)

    out = await service.search(TwitterSearchOptions(query="q"), active_state())

    assert len(out.items) == 1
    item = out.items[0]
    assert item.external_id == "1001"
    assert item.author.username == "alice"
    assert item.author.id == "42"
    assert item.created_at == "2024-05-01T10:00:00Z"
    assert item.metadata.source_plugin == "ferret"
    assert item.metadata.search_type == "twitter-scraper"
    assert item.metadata.url == "https://x.com/alice/status/1001"
    assert item.metadata.language == "en"
    assert item.raw == raw


@pytest.mark.asyncio
async def test_shutdown_clears_delivered_jobs(clock: List[str]) -> None:
    backend = FakeBackend(statuses=["done"], results=records("1"))
    service = TwitterSearchService(backend)
    await service.search(TwitterSearchOptions(query="q"), active_state())
    assert list(service._delivered_jobs) == ["job-1"]

    await service.shutdown()

    assert len(service._delivered_jobs) == 0


def test_id_ordering_key_ranks_numeric_above_text() -> None:
    assert id_ordering_key("10") > id_ordering_key("9")
    assert id_ordering_key("1") > id_ordering_key("zzz")
    assert id_ordering_key("b") > id_ordering_key("a")


def test_id_ordering_key_handles_non_ascii_digits() -> None:
    # "²" passes str.isdigit() but is not a base-10 literal
    assert id_ordering_key("²") == (0, 0, "²")
    assert id_ordering_key("٣") == (1, 3, "")
    assert id_ordering_key("7") > id_ordering_key("²")


@pytest.mark.asyncio
async def test_done_with_unparseable_ids_still_advances(clock: List[str]) -> None:
    backend = FakeBackend(statuses=["done"], results=records("²", "7"))
    service = TwitterSearchService(backend)

    out = await service.search(TwitterSearchOptions(query="q"), active_state())

    assert len(out.items) == 2
    assert out.next_state.latest_processed_id == "7"
    assert out.next_state.current_async_job.status == "done"


@pytest.mark.asyncio
async def test_backend_status_wording_is_normalized(clock: List[str]) -> None:
    backend = FakeBackend(statuses=["in progress"])
    service = TwitterSearchService(backend)

    out = await service.search(TwitterSearchOptions(query="q"), active_state(status="submitted"))

    assert out.next_state.current_async_job.status == "processing"
    envelope = LastProcessedState(data=out.next_state)
    restored = LastProcessedState.from_json(envelope.to_json())
    assert restored.data.current_async_job.is_active


@pytest.mark.asyncio
async def test_unrecognized_status_marks_error_and_state_stays_loadable(clock: List[str]) -> None:
    backend = FakeBackend(statuses=["sleeping"], job_id="job-2")
    service = TwitterSearchService(backend)
    options = TwitterSearchOptions(query="q")

    out = await service.search(options, active_state(cursor="40"))

    job = out.next_state.current_async_job
    assert job.status == "error"
    assert job.error_message == "job status: sleeping"
    restored = LastProcessedState.from_json(LastProcessedState(data=out.next_state).to_json())

    again = await service.search(options, restored.data)

    assert [c[0] for c in backend.calls] == ["status", "submit"]
    assert again.next_state.current_async_job.job_id == "job-2"
    assert again.next_state.latest_processed_id == "40"


@pytest.mark.asyncio
async def test_delivered_job_ids_are_bounded(
    clock: List[str], monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr("ferret.platforms.base.DELIVERED_JOBS_LIMIT", 2)
    backend = FakeBackend(statuses=["done", "done", "done"], results=records("1"))
    service = TwitterSearchService(backend)

    for job_id in ("job-a", "job-b", "job-c"):
        state = PlatformState(
            current_async_job=AsyncJobProgress(
                job_id=job_id, status="processing", submitted_at="2024-05-01T11:59:00.000Z"
            )
        )
        await service.search(TwitterSearchOptions(query="q"), state)

    assert list(service._delivered_jobs) == ["job-b", "job-c"]
