"""Shared Pydantic schemas for BookedSolid."""

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    service: str = "bookedsolid"


class SuccessResponse(BaseModel):
    success: bool = True
    message: str = ""
