"""FastAPI app: scan trigger and deal CRUD, scoped to the calling user."""

import logging
import secrets
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from src.agent.service import DealService, InvalidStatusError, summary_payload
from src.api.models import StatusUpdateRequest, TokenRequest
from src.gmail.client import GmailAuthError
from src.storage.db import DealNotFoundError

logger = logging.getLogger(__name__)


# ── Dependencies ───────────────────────────────────────────────────────────────


def get_service(request: Request) -> DealService:
    return request.app.state.service


def current_user(
    request: Request,
    x_user_id: Optional[str] = Header(default=None),
    authorization: Optional[str] = Header(default=None),
    x_api_key: Optional[str] = Header(default=None),
) -> str:
    """Resolve the caller's user id.

    Identity itself is established upstream; this layer only trusts the
    ``X-User-Id`` header, optionally gated by a shared API key taken from
    ``Authorization: Bearer <key>`` or ``X-API-Key``.
    """
    expected = request.app.state.service.settings.api_key
    if expected:
        supplied = x_api_key
        if not supplied and authorization and authorization.startswith("Bearer "):
            supplied = authorization[len("Bearer "):]
        if not secrets.compare_digest((supplied or "").encode(), expected.encode()):
            raise HTTPException(401, "Unauthorized")
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(401, "Unauthorized")
    return x_user_id.strip()


# ── App factory ────────────────────────────────────────────────────────────────


def create_app(service: DealService) -> FastAPI:
    """Build the API around an already-initialised DealService."""
    app = FastAPI(title="Deal Scanner")
    app.state.service = service

    @app.exception_handler(GmailAuthError)
    async def _reauth(request: Request, exc: GmailAuthError) -> JSONResponse:
        return JSONResponse(
            status_code=401,
            content={"error": "reauth_required", "message": str(exc)},
        )

    @app.exception_handler(Exception)
    async def _internal(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error on %s %s: %s", request.method, request.url.path, exc, exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    @app.get("/api/health")
    async def health():
        return {"status": "ok"}

    @app.post("/api/scan")
    async def scan(
        user_id: str = Depends(current_user),
        svc: DealService = Depends(get_service),
    ):
        """Scan the caller's inbox and return the scan summary."""
        summary = await svc.scan(user_id)
        return summary_payload(summary)

    @app.delete("/api/scan/cache")
    async def clear_scan_cache(
        user_id: str = Depends(current_user),
        svc: DealService = Depends(get_service),
    ):
        return {"success": True, "cleared": svc.clear_scan_cache(user_id)}

    @app.post("/api/auth/token")
    async def store_token(
        req: TokenRequest,
        user_id: str = Depends(current_user),
        svc: DealService = Depends(get_service),
    ):
        if not req.access_token:
            raise HTTPException(400, "Access token is required")
        svc.store_tokens(user_id, req.access_token, req.refresh_token)
        return {"success": True}

    @app.get("/api/deals")
    async def list_deals(
        status: Optional[str] = None,
        type: Optional[str] = None,
        limit: int = 50,
        user_id: str = Depends(current_user),
        svc: DealService = Depends(get_service),
    ):
        deals = svc.list_deals(user_id, status=status, deal_type=type, limit=limit)
        return {
            "deals": [d.to_dict() for d in deals],
            "message": "Deals retrieved successfully" if deals else "No deals found",
        }

    @app.put("/api/deals/{deal_id}")
    async def update_deal(
        deal_id: str,
        req: StatusUpdateRequest,
        user_id: str = Depends(current_user),
        svc: DealService = Depends(get_service),
    ):
        if not req.status:
            raise HTTPException(400, "Status is required")
        try:
            deal = svc.update_status(user_id, deal_id, req.status)
        except InvalidStatusError:
            raise HTTPException(400, "Invalid status")
        except DealNotFoundError:
            raise HTTPException(404, "Deal not found")
        return {"success": True, "deal": deal.to_dict()}

    @app.delete("/api/deals/{deal_id}")
    async def delete_deal(
        deal_id: str,
        user_id: str = Depends(current_user),
        svc: DealService = Depends(get_service),
    ):
        try:
            svc.delete_deal(user_id, deal_id)
        except DealNotFoundError:
            raise HTTPException(404, "Deal not found")
        return {"success": True}

    return app


def create_app_from_env() -> FastAPI:
    """uvicorn factory: load settings, fail closed, and build the app."""
    from src.agent.service import build_service

    return create_app(build_service())
