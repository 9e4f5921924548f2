"""Liveness probe."""

from fastapi import APIRouter

from pharmasos.core.config import settings

router = APIRouter(tags=["health"])


@router.get("/health")
def health() -> dict:
    return {"status": "ok", "service": settings.app_name}
