from fastapi import APIRouter, Depends, HTTPException, Query

from nettrailers_core.errors import DomainError
from nettrailers_interactions.interactions_service import InteractionsService
from nettrailers_interactions.schemas import (
    InteractionAnalytics,
    InteractionRecord,
    InteractionType,
    PrivacySettings,
)
from nettrailers_interactions.tracking import InteractionTracker
from nettrailers_logging.logger import DebugLogger

from app.deps.deps import get_debug_logger, get_interactions_service, get_tracker
from app.deps.supabase_client import get_current_user_id
from app.schemas import (
    CleanupOut,
    InteractionsBatchRequest,
    InteractionsCreateRequest,
    PrivacyUpdateRequest,
    SummaryOut,
    TrackRequest,
    TrackResponse,
)

router = APIRouter(prefix="/v2/interactions", tags=["interactions"])


def _http_error(e: DomainError) -> HTTPException:
    return HTTPException(status_code=e.status, detail=e.detail)


# ---- Log one ----
@router.post("", response_model=InteractionRecord, status_code=201)
async def create_interaction(
    req: InteractionsCreateRequest,
    user_id: str = Depends(get_current_user_id),
    service: InteractionsService = Depends(get_interactions_service),
    debug: DebugLogger = Depends(get_debug_logger),
):
    debug.api("POST /v2/interactions %s on %s", req.interaction_type.value, req.content_id)
    try:
        return await service.log_interaction(user_id=user_id, event=req.to_event())
    except DomainError as e:
        raise _http_error(e)


# ---- Log batch ----
@router.post("/batch", response_model=list[InteractionRecord], status_code=201)
async def create_interactions_batch(
    req: InteractionsBatchRequest,
    user_id: str = Depends(get_current_user_id),
    service: InteractionsService = Depends(get_interactions_service),
):
    try:
        return await service.log_interaction_batch(
            user_id, [item.to_event() for item in req.interactions]
        )
    except DomainError as e:
        raise _http_error(e)


# ---- Fire-and-forget tracking (never fails the caller) ----
@router.post("/track", response_model=TrackResponse, status_code=202)
async def track_interaction(
    req: TrackRequest,
    user_id: str = Depends(get_current_user_id),
    tracker: InteractionTracker = Depends(get_tracker),
):
    rec = await tracker.track(
        user_id,
        req.content,
        req.interaction_type,
        trailer_duration=req.trailer_duration,
        search_query=req.search_query,
        collection_id=req.collection_id,
        source=req.source,
    )
    return TrackResponse(logged=rec is not None, interaction_id=rec.id if rec else None)


# ---- Recent ----
@router.get("/recent", response_model=list[InteractionRecord])
async def list_recent(
    limit: int = Query(50, ge=1, le=500),
    type: InteractionType | None = Query(None),
    user_id: str = Depends(get_current_user_id),
    service: InteractionsService = Depends(get_interactions_service),
):
    if type is not None:
        return await service.get_interactions_by_type(user_id, type, limit)
    return await service.get_recent_interactions(user_id, limit)


# ---- Summary ----
@router.get("/summary", response_model=SummaryOut)
async def get_summary(
    user_id: str = Depends(get_current_user_id),
    service: InteractionsService = Depends(get_interactions_service),
):
    summary = await service.get_summary(user_id)
    if summary is None:
        raise HTTPException(status_code=404, detail="Interaction summary not found")
    return SummaryOut(
        **summary.model_dump(),
        ready_for_recommendations=service.is_ready_for_recommendations(summary),
    )


@router.post("/summary/refresh", response_model=SummaryOut | None)
async def refresh_summary(
    user_id: str = Depends(get_current_user_id),
    service: InteractionsService = Depends(get_interactions_service),
    debug: DebugLogger = Depends(get_debug_logger),
):
    summary = await service.refresh_summary_if_needed(user_id)
    debug.api("Summary refresh for %s returned %s", user_id, "summary" if summary is not None else "nothing")
    if summary is None:
        return None
    return SummaryOut(
        **summary.model_dump(),
        ready_for_recommendations=service.is_ready_for_recommendations(summary),
    )


# ---- Analytics ----
@router.get("/analytics", response_model=InteractionAnalytics)
async def get_analytics(
    user_id: str = Depends(get_current_user_id),
    service: InteractionsService = Depends(get_interactions_service),
):
    try:
        return await service.get_analytics(user_id)
    except DomainError as e:
        raise _http_error(e)


# ---- Retention ----
@router.delete("/retention", response_model=CleanupOut)
async def cleanup_old(
    retention_days: float | None = Query(None, gt=0),
    user_id: str = Depends(get_current_user_id),
    service: InteractionsService = Depends(get_interactions_service),
):
    try:
        deleted = await service.cleanup_old_interactions(user_id, retention_days)
    except DomainError as e:
        raise _http_error(e)
    days = service.config.retention_days if retention_days is None else retention_days
    return CleanupOut(deleted=deleted, retention_days=days)


# ---- Privacy ----
@router.get("/privacy", response_model=PrivacySettings)
async def get_privacy(
    user_id: str = Depends(get_current_user_id),
    service: InteractionsService = Depends(get_interactions_service),
):
    try:
        return await service.get_privacy(user_id)
    except DomainError as e:
        raise _http_error(e)


@router.put("/privacy", response_model=PrivacySettings)
async def put_privacy(
    req: PrivacyUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    service: InteractionsService = Depends(get_interactions_service),
):
    try:
        return await service.update_privacy(
            user_id, PrivacySettings(**req.model_dump())
        )
    except DomainError as e:
        raise _http_error(e)
