"""Key scheme for everything the pipeline writes to a store.

    review:<target>:<revision>    cached result of a completed run
    dedup:<event>                 an inbound event already admitted
    rate:<tenant>:<window>        admissions in one fixed window
    failure:<target>:<revision>   last exhausted run, for offline diagnosis
"""

from __future__ import annotations

DEFAULT_TTLS = {
    "review": 7 * 24 * 60 * 60,
    "dedup": 24 * 60 * 60,
    "failure": 30 * 24 * 60 * 60,
}


def review_key(target_id: str, revision_id: str) -> str:
    return f"review:{target_id}:{revision_id}"


def dedup_key(event_id: str) -> str:
    return f"dedup:{event_id}"


def rate_key(tenant_id: str, window_id: int) -> str:
    return f"rate:{tenant_id}:{window_id}"


def failure_key(target_id: str, revision_id: str) -> str:
    return f"failure:{target_id}:{revision_id}"
