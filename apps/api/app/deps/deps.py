from typing import Any, cast
from dataclasses import dataclass

from fastapi import HTTPException, Request, status

from nettrailers_interactions.interactions_service import InteractionsService
from nettrailers_interactions.tracking import InteractionTracker
from nettrailers_logging.logger import DebugLogger


def _get_state_attr(request: Request, name: str, error_detail: str) -> Any:
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=error_detail,
        )
    return value


def get_interactions_service(request: Request) -> InteractionsService:
    return cast(
        InteractionsService,
        _get_state_attr(
            request, "interactions_service", "Interactions service not initialized"
        ),
    )


def get_tracker(request: Request) -> InteractionTracker:
    return cast(
        InteractionTracker,
        _get_state_attr(request, "tracker", "Interaction tracker not initialized"),
    )


def get_debug_logger(request: Request) -> DebugLogger:
    return getattr(request.app.state, "debug", None) or DebugLogger()


@dataclass(frozen=True)
class SupabaseCreds:
    url: str
    api_key: str


def get_supabase_creds(request: Request) -> SupabaseCreds:
    settings = getattr(request.app.state, "settings", None)
    return SupabaseCreds(
        url=getattr(settings, "supabase_url", None) or "",
        api_key=getattr(settings, "supabase_api_key", None) or "",
    )
