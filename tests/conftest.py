from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.tickets.errors import AttachmentUploadError
from app.tickets.memory import InMemoryTicketRepository
from app.tickets.service import TicketService


class StepClock:
    """Clock returning strictly increasing timestamps."""

    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(seconds=1)) -> None:
        self._current = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        self._step = step

    def __call__(self) -> datetime:
        current = self._current
        self._current += self._step
        return current


class FakeUploader:
    def __init__(self, url: str = "https://cdn.example.com/tickets/shot.png", *, fail: bool = False) -> None:
        self.url = url
        self.fail = fail
        self.payloads: list[bytes] = []

    async def upload(self, payload: bytes) -> str:
        self.payloads.append(payload)
        if self.fail:
            raise AttachmentUploadError("upload rejected")
        return self.url


@pytest.fixture
def repository() -> InMemoryTicketRepository:
    return InMemoryTicketRepository()


@pytest.fixture
def uploader() -> FakeUploader:
    return FakeUploader()


@pytest.fixture
def service(repository, uploader) -> TicketService:
    return TicketService(repository, uploader=uploader, clock=StepClock())


@pytest.fixture
def failing_uploader() -> FakeUploader:
    return FakeUploader(fail=True)


@pytest.fixture
def clock() -> StepClock:
    return StepClock()
