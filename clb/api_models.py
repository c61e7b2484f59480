from __future__ import annotations

from pydantic import BaseModel, Field


class RegisterInstanceRequest(BaseModel):
    host: str = Field(..., min_length=1, description="Address other processes reach the instance on")
    port: int = Field(..., ge=1, le=65535)
    label: str = Field("", description="Human readable instance label, e.g. FIRST")
    weight: int = Field(1, ge=0, le=100, description="Relative routing weight")
    lease_duration_s: int = Field(90, ge=1, le=3600, description="Seconds without heartbeat before eviction")
    instance_id: str | None = Field(None, description="Defaults to host:service:port")


class InstanceOut(BaseModel):
    instance_id: str
    service: str
    host: str
    port: int
    label: str
    weight: int
    lease_duration_s: int
    last_renewal: float


class ServiceOut(BaseModel):
    name: str
    instances: int
