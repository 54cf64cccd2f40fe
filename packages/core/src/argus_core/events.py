"""Turn a GitHub ``pull_request`` webhook payload into a ReviewRequest."""

from __future__ import annotations

from argus_core.models import ReviewRequest

REVIEWABLE_ACTIONS = frozenset({"opened", "reopened", "synchronize", "ready_for_review", "review_requested"})


def parse_pull_request_event(payload: dict, delivery_id: str) -> ReviewRequest | None:
    """Return a ReviewRequest, or None when the event should not be reviewed.

    Drafts and actions such as ``closed`` or ``labeled`` are ignored.
    Raises ValueError when the payload lacks the fields a review needs.
    """
    if not isinstance(payload, dict):
        raise ValueError("payload must be a JSON object")
    if not delivery_id:
        raise ValueError("delivery id is required")

    action = payload.get("action")
    if action not in REVIEWABLE_ACTIONS:
        return None

    pr = payload.get("pull_request")
    repo = payload.get("repository")
    if not isinstance(pr, dict) or not isinstance(repo, dict):
        raise ValueError("payload is missing 'pull_request' or 'repository'")
    if pr.get("draft"):
        return None

    try:
        full_name = repo["full_name"]
        number = int(pr["number"])
        head_sha = pr["head"]["sha"]
    except (KeyError, TypeError, ValueError) as e:
        raise ValueError(f"payload is missing a required field: {e}") from e
    if not isinstance(full_name, str) or not isinstance(head_sha, str) or not full_name or not head_sha:
        raise ValueError("payload has an empty repository name or head sha")

    installation = payload.get("installation") or {}
    owner = repo.get("owner") or {}
    if not isinstance(installation, dict) or not isinstance(owner, dict):
        raise ValueError("payload 'installation' and 'repository.owner' must be objects")
    tenant = installation.get("id") or owner.get("login") or full_name.split("/")[0]

    return ReviewRequest(
        tenant_id=str(tenant),
        target_id=f"{full_name}#{number}",
        revision_id=head_sha,
        event_id=delivery_id,
        raw_content_ref=pr.get("html_url", ""),
    )
