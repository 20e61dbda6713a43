from pydantic import BaseModel, Field
from typing import Optional

class ProductIn(BaseModel):
    name: str = Field(min_length=1)
    price: float = 0.0
    box_price: Optional[float] = None
    pcs_price: Optional[float] = None
    pcs_per_box: Optional[int] = None
    description: Optional[str] = None

class ProductOut(ProductIn):
    """A catalog product as the reconciliation workflow sees it."""
    id: str
    status: Optional[str] = None

class RouteIn(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    is_active: bool = True

class RouteOut(RouteIn):
    id: str

class RouteOption(BaseModel):
    id: str
    name: str
