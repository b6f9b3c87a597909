"""Liveness endpoint."""

from fastapi import APIRouter

router = APIRouter()


@router.get("/health")
async def health():
    """Health check used by the platform's liveness probe."""
    return {"status": "ok"}
