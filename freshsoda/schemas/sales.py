from datetime import date
from pydantic import BaseModel, Field
from typing import Optional, Literal

UnitLiteral = Literal["box", "pcs"]

class SoldLineItem(BaseModel):
    product_id: str = Field(alias="productId")
    unit: UnitLiteral = "pcs"
    quantity: int = 0
    price: Optional[float] = None
    total: Optional[float] = None
    product_name: Optional[str] = Field(default=None, alias="productName")

    model_config = {"populate_by_name": True}

class SaleRecord(BaseModel):
    id: str
    route_id: str
    date: date
    driver_id: Optional[str] = None
    shop_name: Optional[str] = None
    items: list[SoldLineItem] = []
    malformed: bool = False
    total_amount: float = 0.0

class SaleLineIn(BaseModel):
    product_id: str
    unit: UnitLiteral = "pcs"
    quantity: int = Field(gt=0)
    price: Optional[float] = Field(default=None, ge=0)

class SaleIn(BaseModel):
    route_id: str = Field(min_length=1)
    date: date
    shop_name: Optional[str] = None
    lines: list[SaleLineIn] = Field(min_length=1)

class SaleOut(BaseModel):
    id: str
    invoice_no: Optional[str] = None
    total_amount: float
