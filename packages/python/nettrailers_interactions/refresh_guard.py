"""
Refresh guard: decides, from the stored summary document alone, whether a
caller may recompute the summary.

FRESH        -> nothing to do, serve the stored summary
STALE        -> caller may claim the lease and recompute
IN_PROGRESS  -> someone else holds a live lease, serve the stale summary

A claim is a lease: `calculating` plus `claim_expires_at`. Once the expiry
passes (or a legacy boolean-only claim is found) the claim is considered
abandoned and the summary counts as STALE again.

The `claim_expires_at` written by a claim is also its token: releasing the
claim or writing the computed summary only goes ahead while the stored
claim still carries it.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping

from nettrailers_core.types import EpochMs


class RefreshState(str, Enum):
    FRESH = "fresh"
    STALE = "stale"
    IN_PROGRESS = "in_progress"


def has_live_claim(doc: Mapping[str, Any] | None, now_ms: EpochMs) -> bool:
    if not doc or doc.get("calculating") is not True:
        return False
    expires = doc.get("claim_expires_at")
    if expires is None:
        return False
    return int(expires) > now_ms


def refresh_state(
    doc: Mapping[str, Any] | None, now_ms: EpochMs, threshold_ms: int
) -> RefreshState:
    last_updated = int(doc.get("last_updated") or 0) if doc else 0
    if doc and last_updated > 0 and now_ms - last_updated <= threshold_ms:
        return RefreshState.FRESH
    if has_live_claim(doc, now_ms):
        return RefreshState.IN_PROGRESS
    return RefreshState.STALE


def claim_patch(
    doc: Mapping[str, Any] | None, user_id: str, now_ms: EpochMs, ttl_ms: int
) -> dict[str, Any]:
    """Fields merged into the summary doc when taking the lease."""
    patch: dict[str, Any] = {
        "calculating": True,
        "claim_expires_at": now_ms + ttl_ms,
    }
    if not doc:
        # placeholder: never computed, so it still reads as stale
        patch.update(
            {
                "user_id": user_id,
                "total_interactions": 0,
                "genre_preferences": [],
                "top_content_ids": [],
                "last_updated": 0,
            }
        )
    return patch


RELEASE_PATCH: dict[str, Any] = {"calculating": False, "claim_expires_at": None}


def holds_lease(doc: Mapping[str, Any] | None, token: EpochMs) -> bool:
    """The lease token is the claim's `claim_expires_at`; a later claim always gets a larger one."""
    return (
        bool(doc)
        and doc.get("calculating") is True
        and doc.get("claim_expires_at") == token
    )


def may_overwrite(
    doc: Mapping[str, Any] | None,
    last_updated: EpochMs,
    lease_token: EpochMs | None = None,
) -> bool:
    """Whether a computed summary stamped `last_updated` may replace `doc`."""
    if doc and int(doc.get("last_updated") or 0) > last_updated:
        return False
    if lease_token is not None and not holds_lease(doc, lease_token):
        return False
    return True
