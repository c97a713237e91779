from typing import Any, Dict, List, Optional, Tuple

import pytest

from ferret.exceptions import JobStatusFailure


class FakeBackend:
    """In-memory stand-in for the search backend that records every call."""

    def __init__(
        self,
        *,
        job_id: Optional[str] = "job-1",
        statuses: Optional[List[Any]] = None,
        results: Any = None,
    ) -> None:
        self.job_id = job_id
        self.statuses = list(statuses or [])
        self.results = results
        self.calls: List[Tuple[Any, ...]] = []

    def calls_of(self, kind: str) -> List[Tuple[Any, ...]]:
        return [c for c in self.calls if c[0] == kind]

    async def submit_job(self, platform: str, query: str, max_results: int) -> Optional[str]:
        self.calls.append(("submit", platform, query, max_results))
        if isinstance(self.job_id, Exception):
            raise self.job_id
        return self.job_id

    async def check_job_status(self, platform: str, job_id: str) -> Optional[str]:
        self.calls.append(("status", platform, job_id))
        status = self.statuses.pop(0) if self.statuses else "pending"
        if isinstance(status, Exception):
            raise status
        return status

    async def get_job_results(self, platform: str, job_id: str) -> Optional[List[Dict[str, Any]]]:
        self.calls.append(("results", platform, job_id))
        if isinstance(self.results, Exception):
            raise self.results
        return self.results


@pytest.fixture
def clock(monkeypatch: pytest.MonkeyPatch) -> List[str]:
    """Deterministic, strictly increasing timestamps for job transitions."""
    issued: List[str] = []

    def fake_now() -> str:
        stamp = f"2024-05-01T12:00:{len(issued):02d}.000Z"
        issued.append(stamp)
        return stamp

    monkeypatch.setattr("ferret.platforms.base.utcnow_iso", fake_now)
    return issued


@pytest.fixture
def status_failure() -> JobStatusFailure:
    return JobStatusFailure("unrecognized job status: ''", job_id="job-1")
