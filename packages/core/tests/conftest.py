"""In-memory fakes for the pipeline's collaborators: oracle, change source, publisher, sleep."""

from __future__ import annotations

import asyncio
import json

import pytest

from argus_core.models import ChangedUnit, ContextMetadata
from argus_core.orchestrator import ChangeSource
from argus_core.publisher import Publisher


def make_reply(verdict="approve", comments=(), confidence=0.9, positives=(), feedback="Looks fine."):
    return json.dumps(
        {
            "summary": {
                "verdict": verdict,
                "confidence": confidence,
                "mainIssues": [c.get("message", "") for c in comments],
                "positives": list(positives),
            },
            "comments": list(comments),
            "overallFeedback": feedback,
        }
    )


class FakeOracle:
    """Answers from ``script``: a callable (content, context) -> str, or a list consumed in call order.

    List items that are exceptions are raised instead of returned.
    """

    def __init__(self, script=None):
        self.script = script if script is not None else (lambda content, context: make_reply())
        self.calls: list[tuple[str, ContextMetadata]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def analyze(self, content: str, context: ContextMetadata) -> str:
        self.calls.append((content, context))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if callable(self.script):
                reply = self.script(content, context)
            else:
                reply = self.script.pop(0)
            if isinstance(reply, BaseException):
                raise reply
            return reply
        finally:
            self.in_flight -= 1


class FakeChangeSource(ChangeSource):
    def __init__(self, units=(), diff=None, diff_error=None, context=None):
        self.units = [u if isinstance(u, ChangedUnit) else ChangedUnit(u[0], u[1]) for u in units]
        self.diff = diff if diff is not None else "\n".join(u.patch_text for u in self.units)
        self.diff_error = diff_error
        self.context = context or ContextMetadata(title="Add feature", author="octocat", base_branch="main")
        self.context_errors: list[BaseException] = []
        self.unit_requests = 0

    async def get_context(self, target_id: str) -> ContextMetadata:
        if self.context_errors:
            raise self.context_errors.pop(0)
        return self.context

    async def get_whole_diff(self, target_id: str) -> str:
        if self.diff_error is not None:
            raise self.diff_error
        return self.diff

    async def get_changed_units(self, target_id: str) -> list[ChangedUnit]:
        self.unit_requests += 1
        return list(self.units)


class FakePublisher(Publisher):
    """In-memory target.

    ``create_errors`` are raised by successive creates; ``fail_continuation`` by every continuation.
    """

    def __init__(self, message_limit: int = 65_536):
        self.message_limit = message_limit
        self.reviews: dict[int, dict] = {}
        self.comments: dict[int, str] = {}
        self.superseded: list[int] = []
        self.withdrawn: list[int] = []
        self.events: list[str] = []
        self.create_errors: list[BaseException] = []
        self.fail_continuation: BaseException | None = None
        self.create_calls = 0
        self._next_id = 100

    @property
    def continuations(self) -> list[str]:
        return list(self.comments.values())

    def live_reviews(self) -> list[int]:
        return [i for i, r in self.reviews.items() if not r["dismissed"]]

    async def find_existing(self, target_id, signature):
        live = [i for i in self.live_reviews() if signature in self.reviews[i]["body"]]
        return max(live) if live else None

    async def create(self, target_id, body, verdict, comments=()):
        self.create_calls += 1
        if self.create_errors:
            raise self.create_errors.pop(0)
        self._next_id += 1
        self.reviews[self._next_id] = {
            "target": target_id,
            "body": body,
            "verdict": verdict,
            "comments": list(comments),
            "dismissed": False,
        }
        self.events.append(f"create {self._next_id}")
        return self._next_id

    async def supersede(self, target_id, artifact_id):
        self.reviews[artifact_id]["dismissed"] = True
        self.superseded.append(artifact_id)
        self.events.append(f"supersede {artifact_id}")

    async def create_continuation(self, target_id, body):
        if self.fail_continuation is not None:
            raise self.fail_continuation
        self._next_id += 1
        self.comments[self._next_id] = body
        self.events.append(f"continuation {self._next_id}")
        return self._next_id

    async def withdraw_continuation(self, target_id, continuation_id):
        del self.comments[continuation_id]
        self.withdrawn.append(continuation_id)


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def reply():
    return make_reply


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def oracle_factory():
    return FakeOracle


@pytest.fixture
def source_factory():
    return FakeChangeSource


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
def publisher_factory():
    return FakePublisher
