from typing import Any, Optional

from fastapi import Depends, Header, HTTPException, Request, status

from app.deps.deps import SupabaseCreds, get_supabase_creds


def require_bearer_token(authorization: Optional[str] = Header(None)) -> str:
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Authorization header",
        )
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid Authorization header format",
        )
    return token.strip()


def get_supabase_client(
    request: Request,
    creds: SupabaseCreds = Depends(get_supabase_creds),
):
    """
    Shared Supabase client, used only for GoTrue token checks.
    Interaction data never goes through Supabase, so no per-user client is needed.
    """
    client = getattr(request.app.state, "supabase", None)
    if client is not None:
        return client
    if not (creds.url and creds.api_key):
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Supabase credentials not configured",
        )
    try:
        from supabase import Client, create_client  # type: ignore

        client: Client = create_client(creds.url, creds.api_key)
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Supabase init failed: {exc}",
        )
    request.app.state.supabase = client
    return client


def _user_id_from(resp: Any) -> Optional[str]:
    # gotrue returns UserResponse(user=User); older clients return a dict-like payload
    user = getattr(resp, "user", None) or getattr(resp, "data", None)
    if not user:
        return None
    if isinstance(user, dict):
        return user.get("id")
    return getattr(user, "id", None)


def get_current_user_id(
    user_token: str = Depends(require_bearer_token), client=Depends(get_supabase_client)
) -> str:
    """Resolve the caller's user id (UUID) from their bearer token."""
    try:
        resp = client.auth.get_user(user_token)
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Failed to resolve user: {exc}",
        )
    user_id = _user_id_from(resp)
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    return str(user_id)
