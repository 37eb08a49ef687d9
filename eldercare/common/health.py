"""Health probes."""
from fastapi import APIRouter
from pydantic import BaseModel

from eldercare import __version__

router = APIRouter(tags=["system"])


class HealthStatus(BaseModel):
    status: str
    version: str = __version__


@router.get("/health", response_model=HealthStatus)
def health_check():
    return HealthStatus(status="ok")


@router.get("/ready", response_model=HealthStatus)
def readiness_check():
    return HealthStatus(status="ok")
