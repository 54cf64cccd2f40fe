"""Tests for the PyGithub-backed change source and publisher."""

import logging
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from github import GithubException, RateLimitExceededException

from argus_core.errors import FatalError, PayloadTooLargeError, TransientUpstreamError, UpstreamRateLimitedError
from argus_core.gh.pull_request import (
    MAX_LISTED_FILES,
    SUPERSEDE_MESSAGE,
    GitHubChangeSource,
    GitHubPublisher,
    format_target,
    github_collaborators,
    parse_target,
)
from argus_core.models import Verdict
from argus_core.publisher import InlineComment

TARGET = "octo/app#7"


def _file(filename, patch="@@ -1 +1 @@\n-a\n+b", additions=1, deletions=1, changes=2):
    return SimpleNamespace(filename=filename, patch=patch, additions=additions, deletions=deletions, changes=changes)


def _review(review_id, body, state="COMMENTED"):
    return SimpleNamespace(id=review_id, body=body, state=state)


@pytest.fixture
def pr():
    pull = MagicMock()
    pull.title = "Add feature"
    pull.body = "Adds the feature."
    pull.user.login = "octocat"
    pull.base.ref = "main"
    pull.head.ref = "feature"
    pull.head.sha = "f" * 40
    pull.get_files.return_value = [_file("a.py"), _file("b.py")]
    return pull


@pytest.fixture
def github(pr):
    gh = MagicMock()
    gh.get_repo.return_value.get_pull.return_value = pr
    return gh


class TestTargets:
    def test_parse(self):
        assert parse_target("octo/app#7") == ("octo/app", 7)

    def test_parse_dotted_repo(self):
        assert parse_target("my-org/site.github.io#12") == ("my-org/site.github.io", 12)

    @pytest.mark.parametrize("bad", ["octo/app", "octo#7", "octo/app#x", ""])
    def test_parse_rejects_malformed(self, bad):
        with pytest.raises(ValueError):
            parse_target(bad)

    def test_format(self):
        assert format_target("octo/app", 7) == TARGET


class TestGitHubChangeSource:
    @pytest.mark.asyncio
    async def test_context(self, github):
        ctx = await GitHubChangeSource(github).get_context(TARGET)
        assert ctx.title == "Add feature"
        assert ctx.author == "octocat"
        assert ctx.base_branch == "main"
        assert ctx.head_branch == "feature"
        assert ctx.description == "Adds the feature."
        github.get_repo.assert_called_once_with("octo/app")
        github.get_repo.return_value.get_pull.assert_called_once_with(7)

    @pytest.mark.asyncio
    async def test_pull_request_fetched_once(self, github):
        source = GitHubChangeSource(github)
        await source.get_context(TARGET)
        await source.get_revision(TARGET)
        assert github.get_repo.call_count == 1

    @pytest.mark.asyncio
    async def test_revision_is_head_sha(self, github):
        assert await GitHubChangeSource(github).get_revision(TARGET) == "f" * 40

    @pytest.mark.asyncio
    async def test_whole_diff_has_git_headers(self, github):
        diff = await GitHubChangeSource(github).get_whole_diff(TARGET)
        assert "diff --git a/a.py b/a.py\n--- a/a.py\n+++ b/a.py\n@@ -1 +1 @@" in diff
        assert "diff --git a/b.py b/b.py" in diff

    @pytest.mark.asyncio
    async def test_whole_diff_skips_unchanged_binary(self, github, pr):
        pr.get_files.return_value = [_file("a.py"), _file("empty.bin", patch=None, changes=0)]
        diff = await GitHubChangeSource(github).get_whole_diff(TARGET)
        assert "empty.bin" not in diff

    @pytest.mark.asyncio
    async def test_withheld_patch_is_too_large(self, github, pr):
        pr.get_files.return_value = [_file("a.py"), _file("huge.sql", patch=None, changes=90_000)]
        with pytest.raises(PayloadTooLargeError, match="huge.sql"):
            await GitHubChangeSource(github).get_whole_diff(TARGET)

    @pytest.mark.asyncio
    async def test_truncated_file_list_is_too_large(self, github, pr):
        pr.get_files.return_value = [_file(f"f{i}.py") for i in range(MAX_LISTED_FILES)]
        with pytest.raises(PayloadTooLargeError):
            await GitHubChangeSource(github).get_whole_diff(TARGET)

    @pytest.mark.asyncio
    async def test_changed_units(self, github, pr):
        pr.get_files.return_value = [_file("a.py", additions=3, deletions=1), _file("logo.png", patch=None)]
        units = await GitHubChangeSource(github).get_changed_units(TARGET)
        assert [u.unit_id for u in units] == ["a.py", "logo.png"]
        assert units[0].added_count == 3
        assert units[0].removed_count == 1
        assert units[1].patch_text == ""

    @pytest.mark.asyncio
    async def test_server_error_is_transient(self, github):
        github.get_repo.side_effect = GithubException(503, {"message": "unavailable"}, {})
        with pytest.raises(TransientUpstreamError):
            await GitHubChangeSource(github).get_context(TARGET)

    @pytest.mark.asyncio
    async def test_not_found_is_fatal(self, github):
        github.get_repo.side_effect = GithubException(404, {"message": "Not Found"}, {})
        with pytest.raises(FatalError):
            await GitHubChangeSource(github).get_context(TARGET)

    @pytest.mark.asyncio
    async def test_rate_limit_carries_retry_after(self, github):
        github.get_repo.side_effect = RateLimitExceededException(403, {"message": "rate"}, {"retry-after": "7"})
        with pytest.raises(UpstreamRateLimitedError) as exc_info:
            await GitHubChangeSource(github).get_context(TARGET)
        assert exc_info.value.retry_after == 7.0


class TestGitHubPublisher:
    @pytest.mark.asyncio
    async def test_find_existing_returns_latest_signed_review(self, github, pr):
        pr.get_reviews.return_value = [
            _review(1, "<!-- argus -->\nold"),
            _review(2, "LGTM from a human"),
            _review(3, "<!-- argus -->\nnewer"),
        ]
        assert await GitHubPublisher(github).find_existing(TARGET, "<!-- argus -->") == 3

    @pytest.mark.asyncio
    async def test_find_existing_skips_dismissed(self, github, pr):
        pr.get_reviews.return_value = [
            _review(1, "<!-- argus -->\nold"),
            _review(3, "<!-- argus -->\nnewer", state="DISMISSED"),
        ]
        assert await GitHubPublisher(github).find_existing(TARGET, "<!-- argus -->") == 1

    @pytest.mark.asyncio
    async def test_find_existing_none(self, github, pr):
        pr.get_reviews.return_value = [_review(1, None)]
        assert await GitHubPublisher(github).find_existing(TARGET, "<!-- argus -->") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("verdict", list(Verdict))
    async def test_create_uses_verdict_event(self, github, pr, verdict):
        pr.create_review.return_value = SimpleNamespace(id=55)
        artifact = await GitHubPublisher(github).create(TARGET, "body", verdict)
        assert artifact == 55
        pr.create_review.assert_called_once_with(body="body", event=verdict.event)

    @pytest.mark.asyncio
    async def test_supersede_dismisses_review(self, github, pr):
        await GitHubPublisher(github).supersede(TARGET, 55)
        pr.get_review.assert_called_once_with(55)
        pr.get_review.return_value.dismiss.assert_called_once_with(SUPERSEDE_MESSAGE)

    @pytest.mark.asyncio
    async def test_supersede_failure_is_logged(self, github, pr, caplog):
        pr.get_review.return_value.dismiss.side_effect = GithubException(422, {"message": "cannot dismiss"}, {})
        with caplog.at_level(logging.WARNING, logger="argus_core.gh.pull_request"):
            await GitHubPublisher(github).supersede(TARGET, 55)
        assert "could not dismiss review 55" in caplog.text

    @pytest.mark.asyncio
    async def test_create_sends_inline_comments(self, github, pr):
        pr.create_review.return_value = SimpleNamespace(id=55)
        comments = [InlineComment("db.py", 12, "SQL injection")]
        await GitHubPublisher(github).create(TARGET, "body", Verdict.REQUEST_CHANGES, comments)
        pr.create_review.assert_called_once_with(
            body="body",
            event="REQUEST_CHANGES",
            comments=[{"path": "db.py", "line": 12, "side": "RIGHT", "body": "SQL injection"}],
        )

    @pytest.mark.asyncio
    async def test_rejected_inline_comments_fall_back_to_body(self, github, pr, caplog):
        pr.create_review.side_effect = [
            GithubException(422, {"message": "Line could not be resolved"}, {}),
            SimpleNamespace(id=56),
        ]
        comments = [InlineComment("db.py", 999, "SQL injection")]
        with caplog.at_level(logging.WARNING, logger="argus_core.gh.pull_request"):
            artifact = await GitHubPublisher(github).create(TARGET, "body", Verdict.COMMENT, comments)

        assert artifact == 56
        assert pr.create_review.call_args_list[-1].kwargs == {"body": "body", "event": "COMMENT"}
        assert "inline comments rejected" in caplog.text

    @pytest.mark.asyncio
    async def test_inline_comment_server_error_is_transient(self, github, pr):
        pr.create_review.side_effect = GithubException(502, {"message": "bad gateway"}, {})
        with pytest.raises(TransientUpstreamError):
            await GitHubPublisher(github).create(TARGET, "body", Verdict.COMMENT, [InlineComment("a.py", 1, "x")])
        assert pr.create_review.call_count == 1

    @pytest.mark.asyncio
    async def test_continuation_is_issue_comment(self, github, pr):
        pr.create_issue_comment.return_value = SimpleNamespace(id=77)
        assert await GitHubPublisher(github).create_continuation(TARGET, "part 2") == 77
        pr.create_issue_comment.assert_called_once_with("part 2")

    @pytest.mark.asyncio
    async def test_withdraw_deletes_issue_comment(self, github, pr):
        await GitHubPublisher(github).withdraw_continuation(TARGET, 77)
        pr.get_issue_comment.assert_called_once_with(77)
        pr.get_issue_comment.return_value.delete.assert_called_once_with()


class TestGithubCollaborators:
    @pytest.mark.asyncio
    async def test_share_one_client(self, mocker, pr):
        gh = MagicMock()
        gh.get_repo.return_value.get_pull.return_value = pr
        mocker.patch("argus_core.gh.pull_request.Github", return_value=gh)

        source, publisher = github_collaborators("token")
        await source.get_context(TARGET)
        await publisher.create_continuation(TARGET, "x")
        assert gh.get_repo.call_count == 1
