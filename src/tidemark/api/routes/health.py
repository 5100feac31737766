"""Health check endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Request, Response, status

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}


@router.get("/ready")
async def ready(request: Request, response: Response) -> dict:
    deployments = getattr(request.app.state, "deployments", None)
    if not deployments:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "not ready", "tables": 0}
    return {"status": "ready", "tables": len(deployments)}
