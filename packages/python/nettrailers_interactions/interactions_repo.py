from __future__ import annotations

from typing import Any, Sequence

from nettrailers_core.config import (
    INTERACTIONS_SUBCOLLECTION,
    PRIVACY_DOC_ID,
    SETTINGS_SUBCOLLECTION,
    SUMMARY_DOC_ID,
    SUMMARY_SUBCOLLECTION,
    USERS_COLLECTION,
)
from nettrailers_core.types import EpochMs
from nettrailers_store.base import DocumentRef, DocumentStore, Filter, Transaction

from .refresh_guard import (
    RELEASE_PATCH,
    RefreshState,
    claim_patch,
    holds_lease,
    may_overwrite,
    refresh_state,
)
from .schemas import (
    InteractionRecord,
    InteractionSummary,
    InteractionType,
    PrivacySettings,
)


def interactions_collection(user_id: str) -> str:
    return f"{USERS_COLLECTION}/{user_id}/{INTERACTIONS_SUBCOLLECTION}"


def summary_ref(user_id: str) -> DocumentRef:
    return DocumentRef(
        f"{USERS_COLLECTION}/{user_id}/{SUMMARY_SUBCOLLECTION}", SUMMARY_DOC_ID
    )


def privacy_ref(user_id: str) -> DocumentRef:
    return DocumentRef(
        f"{USERS_COLLECTION}/{user_id}/{SETTINGS_SUBCOLLECTION}", PRIVACY_DOC_ID
    )


def _record_to_doc(rec: InteractionRecord) -> dict[str, Any]:
    return rec.model_dump(mode="json", exclude_none=True)


def _doc_to_record(doc: dict[str, Any]) -> InteractionRecord:
    return InteractionRecord(**doc)


class InteractionsRepo:
    def __init__(self, store: DocumentStore):
        self.store = store

    # ---------- Interactions ----------
    async def create(self, rec: InteractionRecord) -> InteractionRecord:
        ref = DocumentRef(interactions_collection(rec.user_id), rec.id)
        await self.store.set(ref, _record_to_doc(rec))
        return rec

    async def create_many(
        self, recs: Sequence[InteractionRecord]
    ) -> list[InteractionRecord]:
        items = [
            (DocumentRef(interactions_collection(r.user_id), r.id), _record_to_doc(r))
            for r in recs
        ]
        await self.store.set_many(items)
        return list(recs)

    async def list_recent(
        self,
        user_id: str,
        *,
        limit: int,
        interaction_type: InteractionType | None = None,
    ) -> list[InteractionRecord]:
        filters = []
        if interaction_type is not None:
            filters.append(Filter("interaction_type", "==", interaction_type.value))
        rows = await self.store.query(
            interactions_collection(user_id),
            filters=filters,
            order_by="timestamp",
            descending=True,
            limit=limit,
        )
        return [_doc_to_record(r.data) for r in rows]

    async def delete_older_than(
        self, user_id: str, cutoff_ms: EpochMs, *, batch_size: int
    ) -> int:
        """Delete records with timestamp < cutoff, one bounded batch at a time."""
        collection = interactions_collection(user_id)
        total = 0
        while True:
            rows = await self.store.query(
                collection,
                filters=[Filter("timestamp", "<", cutoff_ms)],
                order_by="timestamp",
                limit=batch_size,
            )
            if not rows:
                break
            total += await self.store.delete_many([r.ref for r in rows])
            if len(rows) < batch_size:
                break
        return total

    # ---------- Summary ----------
    async def get_summary_doc(self, user_id: str) -> dict[str, Any] | None:
        return await self.store.get(summary_ref(user_id))

    async def put_summary(
        self, summary: InteractionSummary, *, lease_token: EpochMs | None = None
    ) -> tuple[bool, dict[str, Any] | None]:
        """
        Overwrite the stored summary (clearing any claim fields) unless the
        stored one is newer or, with `lease_token`, the lease has moved on.
        Returns whether it was written and the document it was checked against.
        """
        ref = summary_ref(summary.user_id)

        async def _put(tx: Transaction) -> tuple[bool, dict[str, Any] | None]:
            current = await tx.get(ref)
            if not may_overwrite(current, summary.last_updated, lease_token):
                return False, current
            tx.set(ref, summary.model_dump(mode="json"))
            return True, current

        return await self.store.run_transaction(_put)

    async def claim_refresh(
        self,
        user_id: str,
        *,
        now_ms: EpochMs,
        threshold_ms: int,
        lease_ms: int,
    ) -> tuple[RefreshState, dict[str, Any] | None, EpochMs | None]:
        """
        Atomically read the summary and, when stale and unclaimed, take the lease.
        Returns the observed state, the document as read and, when claimed,
        the lease token.
        """
        ref = summary_ref(user_id)

        async def _claim(
            tx: Transaction,
        ) -> tuple[RefreshState, dict[str, Any] | None, EpochMs | None]:
            doc = await tx.get(ref)
            state = refresh_state(doc, now_ms, threshold_ms)
            if state != RefreshState.STALE:
                return state, doc, None
            patch = claim_patch(doc, user_id, now_ms, lease_ms)
            tx.set(ref, patch, merge=True)
            return state, doc, patch["claim_expires_at"]

        return await self.store.run_transaction(_claim)

    async def release_claim(self, user_id: str, lease_token: EpochMs) -> bool:
        """Clear the claim only if it is still the one `lease_token` took."""
        ref = summary_ref(user_id)

        async def _release(tx: Transaction) -> bool:
            if not holds_lease(await tx.get(ref), lease_token):
                return False
            tx.set(ref, dict(RELEASE_PATCH), merge=True)
            return True

        return await self.store.run_transaction(_release)

    # ---------- Privacy ----------
    async def get_privacy(self, user_id: str) -> PrivacySettings | None:
        doc = await self.store.get(privacy_ref(user_id))
        return PrivacySettings(**doc) if doc else None

    async def put_privacy(
        self, user_id: str, settings: PrivacySettings
    ) -> PrivacySettings:
        await self.store.set(privacy_ref(user_id), settings.model_dump(mode="json"))
        return settings
