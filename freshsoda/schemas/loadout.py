from datetime import date
from pydantic import BaseModel, Field
from typing import Optional

class LoadOutIn(BaseModel):
    route_id: str = Field(min_length=1)
    date: date
    driver_id: Optional[str] = None   # admin only; drivers always act for themselves
    view_id: Optional[str] = None

class LoadOutMarkerOut(BaseModel):
    step: str
    product_id: Optional[str] = None
    boxes: int = 0
    pcs: int = 0
    status: str
    detail: Optional[str] = None

class LoadOutRunOut(BaseModel):
    id: str
    driver_id: Optional[str] = None
    route_id: str
    work_date: date
    trigger: str
    status: str
    current_step: Optional[str] = None
    error: Optional[str] = None
    warning: Optional[str] = None
    remaining_before: Optional[int] = None
    remaining_after: Optional[int] = None
    markers: list[LoadOutMarkerOut] = []

class LoadOutOut(BaseModel):
    ok: bool
    run: LoadOutRunOut
    navigate_to: Optional[str] = None
    navigate_after_ms: Optional[int] = None

class EndRouteApproveIn(BaseModel):
    driver_id: str = Field(min_length=1)
    route_id: str = Field(min_length=1)
    date: date
