"""Tests for webhook payload parsing."""

import pytest

from argus_core.events import parse_pull_request_event


def payload(action="opened", draft=False, installation=True, **pr_overrides):
    pr = {
        "number": 42,
        "draft": draft,
        "head": {"sha": "f" * 40},
        "html_url": "https://github.com/octo/app/pull/42",
        **pr_overrides,
    }
    data = {
        "action": action,
        "pull_request": pr,
        "repository": {"full_name": "octo/app", "owner": {"login": "octo"}},
    }
    if installation:
        data["installation"] = {"id": 9876}
    return data


class TestParsePullRequestEvent:
    def test_opened(self):
        request = parse_pull_request_event(payload(), "delivery-1")
        assert request.target_id == "octo/app#42"
        assert request.revision_id == "f" * 40
        assert request.event_id == "delivery-1"
        assert request.tenant_id == "9876"
        assert request.raw_content_ref == "https://github.com/octo/app/pull/42"

    @pytest.mark.parametrize("action", ["opened", "reopened", "synchronize", "ready_for_review", "review_requested"])
    def test_reviewable_actions(self, action):
        assert parse_pull_request_event(payload(action), "d") is not None

    @pytest.mark.parametrize("action", ["closed", "labeled", "edited", None])
    def test_other_actions_ignored(self, action):
        assert parse_pull_request_event(payload(action), "d") is None

    def test_draft_ignored(self):
        assert parse_pull_request_event(payload(draft=True), "d") is None

    def test_tenant_falls_back_to_owner(self):
        request = parse_pull_request_event(payload(installation=False), "d")
        assert request.tenant_id == "octo"

    def test_missing_head_sha_rejected(self):
        with pytest.raises(ValueError):
            parse_pull_request_event(payload(head={}), "d")

    def test_missing_pull_request_rejected(self):
        with pytest.raises(ValueError):
            parse_pull_request_event({"action": "opened", "repository": {"full_name": "octo/app"}}, "d")

    def test_non_object_rejected(self):
        with pytest.raises(ValueError):
            parse_pull_request_event(["not", "a", "dict"], "d")

    @pytest.mark.parametrize("installation", ["9876", 9876, ["id"]])
    def test_non_object_installation_rejected(self, installation):
        data = {**payload(), "installation": installation}
        with pytest.raises(ValueError, match="installation"):
            parse_pull_request_event(data, "d")

    def test_non_object_owner_rejected(self):
        data = payload(installation=False)
        data["repository"]["owner"] = "octo"
        with pytest.raises(ValueError, match="owner"):
            parse_pull_request_event(data, "d")

    def test_non_string_repository_name_rejected(self):
        data = payload()
        data["repository"]["full_name"] = 1234
        with pytest.raises(ValueError):
            parse_pull_request_event(data, "d")

    def test_missing_delivery_id_rejected(self):
        with pytest.raises(ValueError):
            parse_pull_request_event(payload(), "")
