"""Publishing collaborator interface and the supersede-or-create decision.

Any platform adapter (GitHub, a terminal printer for shadow runs, a test
fake) implements Publisher. publish_output() is the only way the pipeline
posts anything, and it refuses to post a message above the platform limit.

A review is published all or nothing: continuations go up first, then our
previous artifact is retired, then the primary is posted. Continuations
already posted are withdrawn if a later step fails.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Sequence, Union

from argus_core.errors import MessageTooLargeError
from argus_core.formatter import PLATFORM_LIMIT, SIGNATURE, render_inline_comment
from argus_core.models import FormattedOutput, Issue, Verdict

logger = logging.getLogger(__name__)

ArtifactId = Union[int, str]

MAX_INLINE_COMMENTS = 50


@dataclass(frozen=True)
class InlineComment:
    path: str
    line: int
    body: str


def inline_comments(issues: Sequence[Issue], limit: int = MAX_INLINE_COMMENTS) -> list[InlineComment]:
    """Line-anchored comments for the issues that name both a file and a line."""
    anchored = [i for i in issues if i.path and i.line]
    return [InlineComment(i.path, i.line, render_inline_comment(i)) for i in anchored[:limit]]


class Publisher(ABC):
    message_limit: int = PLATFORM_LIMIT

    @abstractmethod
    async def find_existing(self, target_id: str, signature: str) -> ArtifactId | None:
        """Return the id of our most recent live artifact on the target, or None."""

    @abstractmethod
    async def create(
        self, target_id: str, body: str, verdict: Verdict, comments: Sequence[InlineComment] = ()
    ) -> ArtifactId:
        """Publish the primary message, with any inline comments, and return its artifact id."""

    @abstractmethod
    async def supersede(self, target_id: str, artifact_id: ArtifactId) -> None:
        """Retire a previously published artifact."""

    @abstractmethod
    async def create_continuation(self, target_id: str, body: str) -> ArtifactId:
        """Publish one continuation message and return its id."""

    @abstractmethod
    async def withdraw_continuation(self, target_id: str, continuation_id: ArtifactId) -> None:
        """Delete a continuation posted by an attempt that did not complete."""

    def check_size(self, body: str) -> None:
        if len(body) > self.message_limit:
            raise MessageTooLargeError(len(body), self.message_limit)


@dataclass(frozen=True)
class Supersede:
    artifact_id: ArtifactId


@dataclass(frozen=True)
class CreateNew:
    pass


PublishDecision = Union[Supersede, CreateNew]


async def decide(
    publisher: Publisher,
    target_id: str,
    revision_id: str,
    update_existing: bool = True,
) -> PublishDecision:
    """Supersede our previous artifact on the target when allowed, else create a new one."""
    if not update_existing:
        return CreateNew()
    existing = await publisher.find_existing(target_id, SIGNATURE)
    if existing is None:
        return CreateNew()
    logger.info("target=%s revision=%s superseding artifact=%s", target_id, revision_id[:7], existing)
    return Supersede(existing)


async def publish_output(
    publisher: Publisher,
    target_id: str,
    output: FormattedOutput,
    verdict: Verdict,
    decision: PublishDecision,
    comments: Sequence[InlineComment] = (),
) -> ArtifactId:
    """Post the continuations, retire the superseded artifact, then post the primary.

    Returns the primary's artifact id. Every message is size-checked before
    anything is posted. If a step fails, the continuations already posted are
    withdrawn and the error is re-raised, so a failed call leaves nothing of
    the new review behind.
    """
    for message in output.messages:
        publisher.check_size(message)
    for comment in comments:
        publisher.check_size(comment.body)

    posted: list[ArtifactId] = []
    try:
        for body in output.continuation_messages:
            posted.append(await publisher.create_continuation(target_id, body))
        if isinstance(decision, Supersede):
            await publisher.supersede(target_id, decision.artifact_id)
        artifact_id = await publisher.create(target_id, output.primary_message, verdict, comments)
    except Exception:
        await _withdraw(publisher, target_id, posted)
        raise

    logger.info(
        "target=%s published artifact=%s verdict=%s continuations=%d inline=%d truncated=%s",
        target_id,
        artifact_id,
        verdict.value,
        len(output.continuation_messages),
        len(comments),
        output.truncated,
    )
    return artifact_id


async def _withdraw(publisher: Publisher, target_id: str, posted: list[ArtifactId]) -> None:
    for continuation_id in reversed(posted):
        try:
            await publisher.withdraw_continuation(target_id, continuation_id)
        except Exception as e:
            logger.warning("target=%s could not withdraw continuation=%s: %s", target_id, continuation_id, e)
