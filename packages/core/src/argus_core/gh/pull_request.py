"""GitHub adapters for the review pipeline, built on PyGithub.

GitHubChangeSource reads a pull request; GitHubPublisher writes reviews and
comments back to it. PyGithub is synchronous, so every call that may hit
the network runs in a worker thread via asyncio.to_thread.

Targets are addressed as "owner/repo#number".
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Sequence

from github import Github, GithubException, RateLimitExceededException

from argus_core.errors import PayloadTooLargeError, ReviewError, UpstreamRateLimitedError
from argus_core.models import ChangedUnit, ContextMetadata, Verdict
from argus_core.orchestrator import ChangeSource
from argus_core.providers.base import classify_status, parse_retry_after
from argus_core.publisher import ArtifactId, InlineComment, Publisher

logger = logging.getLogger(__name__)

_TARGET_RE = re.compile(r"^(?P<repo>[\w.-]+/[\w.-]+)#(?P<number>\d+)$")

# The pull request files API stops listing after this many files.
MAX_LISTED_FILES = 3000

SUPERSEDE_MESSAGE = "Superseded by updated Argus review"


def parse_target(target_id: str) -> tuple[str, int]:
    match = _TARGET_RE.match(target_id)
    if not match:
        raise ValueError(f"Invalid target {target_id!r}; expected 'owner/repo#number'")
    return match["repo"], int(match["number"])


def format_target(repo_name: str, pr_number: int) -> str:
    return f"{repo_name}#{pr_number}"


def _github_error(exc: GithubException) -> ReviewError:
    if isinstance(exc, RateLimitExceededException):
        return UpstreamRateLimitedError(str(exc), retry_after=parse_retry_after(exc.headers))
    return classify_status(exc.status, str(exc), parse_retry_after(exc.headers))


class _GitHubClient:
    """Shared PyGithub handle plus a per-target cache of PullRequest objects."""

    def __init__(self, github: Github | str):
        self.github = Github(github) if isinstance(github, str) else github
        self._pulls: dict[str, object] = {}

    def _pull_sync(self, target_id: str):
        if target_id not in self._pulls:
            repo_name, number = parse_target(target_id)
            self._pulls[target_id] = self.github.get_repo(repo_name).get_pull(number)
        return self._pulls[target_id]

    async def call(self, fn, *args, **kwargs):
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except GithubException as e:
            raise _github_error(e) from e

    async def pull(self, target_id: str):
        return await self.call(self._pull_sync, target_id)


class GitHubChangeSource(ChangeSource):
    def __init__(self, github: Github | str | _GitHubClient):
        self._client = github if isinstance(github, _GitHubClient) else _GitHubClient(github)

    async def get_context(self, target_id: str) -> ContextMetadata:
        pr = await self._client.pull(target_id)
        return ContextMetadata(
            title=pr.title or "",
            author=pr.user.login if pr.user else "",
            base_branch=pr.base.ref,
            head_branch=pr.head.ref,
            description=pr.body or "",
        )

    async def get_revision(self, target_id: str) -> str:
        """Head commit SHA of the pull request."""
        pr = await self._client.pull(target_id)
        return pr.head.sha

    async def _files(self, target_id: str) -> list:
        pr = await self._client.pull(target_id)
        return await self._client.call(lambda: list(pr.get_files()))

    async def get_whole_diff(self, target_id: str) -> str:
        files = await self._files(target_id)
        if len(files) >= MAX_LISTED_FILES:
            raise PayloadTooLargeError(f"{target_id} lists {len(files)} files; GitHub truncates the file list")

        parts = []
        for f in files:
            if f.patch is None:
                if f.changes:
                    raise PayloadTooLargeError(f"GitHub withheld the patch for {f.filename}")
                continue
            parts.append(f"diff --git a/{f.filename} b/{f.filename}\n--- a/{f.filename}\n+++ b/{f.filename}\n{f.patch}")
        return "\n".join(parts)

    async def get_changed_units(self, target_id: str) -> list[ChangedUnit]:
        files = await self._files(target_id)
        return [
            ChangedUnit(
                unit_id=f.filename,
                patch_text=f.patch or "",
                added_count=f.additions,
                removed_count=f.deletions,
            )
            for f in files
        ]


class GitHubPublisher(Publisher):
    """Publishes the primary message as a PR review and continuations as issue comments."""

    def __init__(self, github: Github | str | _GitHubClient):
        self._client = github if isinstance(github, _GitHubClient) else _GitHubClient(github)

    async def find_existing(self, target_id: str, signature: str) -> ArtifactId | None:
        pr = await self._client.pull(target_id)
        reviews = await self._client.call(lambda: list(pr.get_reviews()))
        for review in reversed(reviews):
            if review.state != "DISMISSED" and signature in (review.body or ""):
                return review.id
        return None

    async def create(
        self, target_id: str, body: str, verdict: Verdict, comments: Sequence[InlineComment] = ()
    ) -> ArtifactId:
        pr = await self._client.pull(target_id)
        if comments:
            api_comments = [{"path": c.path, "line": c.line, "side": "RIGHT", "body": c.body} for c in comments]
            try:
                review = await asyncio.to_thread(
                    pr.create_review, body=body, event=verdict.event, comments=api_comments
                )
                return review.id
            except GithubException as e:
                # 422: at least one line is not part of the diff.
                if e.status != 422:
                    raise _github_error(e) from e
                logger.warning("target=%s inline comments rejected, posting review body only: %s", target_id, e)
        review = await self._client.call(pr.create_review, body=body, event=verdict.event)
        return review.id

    async def supersede(self, target_id: str, artifact_id: ArtifactId) -> None:
        pr = await self._client.pull(target_id)

        def dismiss():
            pr.get_review(int(artifact_id)).dismiss(SUPERSEDE_MESSAGE)

        try:
            await asyncio.to_thread(dismiss)
        except GithubException as e:
            # Plain COMMENT reviews cannot be dismissed; the new review is posted regardless.
            logger.warning("target=%s could not dismiss review %s: %s", target_id, artifact_id, e)

    async def create_continuation(self, target_id: str, body: str) -> ArtifactId:
        pr = await self._client.pull(target_id)
        comment = await self._client.call(pr.create_issue_comment, body)
        return comment.id

    async def withdraw_continuation(self, target_id: str, continuation_id: ArtifactId) -> None:
        pr = await self._client.pull(target_id)

        def delete():
            pr.get_issue_comment(int(continuation_id)).delete()

        await self._client.call(delete)


def github_collaborators(token: str) -> tuple[GitHubChangeSource, GitHubPublisher]:
    """A change source and publisher sharing one client and pull request cache."""
    client = _GitHubClient(token)
    return GitHubChangeSource(client), GitHubPublisher(client)
