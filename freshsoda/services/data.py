"""Data-access seam for the day-close workflow.

The summary builder and the load-out saga only talk to a ``DataService``. The
ledgers either live in our own database (``SqlDataService``) or in a hosted
backend reached over REST (``RestDataService``); ``DATA_BACKEND`` picks one.
"""
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import date

import httpx
from sqlalchemy.orm import Session

from freshsoda.config import settings
from freshsoda.schemas.catalog import ProductOut, RouteOption
from freshsoda.schemas.sales import SaleRecord
from freshsoda.schemas.stock import AssignedStockRow, AssignedRemaining, MovementOut


class DataServiceError(Exception):
    """A read or write against the ledgers failed."""

    def __init__(self, message: str | None = None):
        self.message = message or "Request to the data service failed"
        super().__init__(self.message)


class DataService(ABC):
    # True when the end-of-route RPCs put qty_remaining back into warehouse_stock
    # themselves, so load-out must not credit the warehouse a second time
    return_rpc_credits_warehouse = False

    @abstractmethod
    async def get_products(self) -> list[ProductOut]: ...

    @abstractmethod
    async def get_active_routes(self) -> list[RouteOption]: ...

    @abstractmethod
    async def get_sales_for(self, work_date: date, route_id: str | None = None) -> list[SaleRecord]: ...

    @abstractmethod
    async def get_assigned_stock_for_billing(
        self, driver_id: str | None, route_id: str, work_date: date
    ) -> list[tuple[ProductOut, AssignedStockRow]]: ...

    @abstractmethod
    async def add_warehouse_stock(
        self, product_id: str, boxes: int, pcs: int, note: str | None = None, movement_type: str = "IN"
    ) -> None: ...

    @abstractmethod
    async def end_route_return_stock_rpc(self, driver_id: str, route_id: str, work_date: date) -> None: ...

    @abstractmethod
    async def end_route_return_stock_route_rpc(self, route_id: str, work_date: date) -> None: ...

    @abstractmethod
    async def clear_daily_stock(self, driver_id: str | None, route_id: str, work_date: date) -> None: ...

    @abstractmethod
    async def get_route_assigned_stock(self, route_id: str, work_date: date) -> list[AssignedRemaining]: ...

    @abstractmethod
    async def get_driver_assigned_stock(
        self, driver_id: str, route_id: str, work_date: date
    ) -> list[AssignedRemaining]: ...

    @abstractmethod
    async def get_warehouse_movements(self, product_id: str | None = None, limit: int = 50) -> list[MovementOut]: ...


def rest_client(token: str | None = None) -> httpx.AsyncClient:
    if not settings.REST_URL or not settings.REST_KEY:
        raise DataServiceError("REST_URL and REST_KEY must be set when DATA_BACKEND=rest")
    return httpx.AsyncClient(
        base_url=settings.REST_URL.rstrip("/") + "/rest/v1",
        headers={
            "apikey": settings.REST_KEY,
            "Authorization": f"Bearer {token or settings.REST_KEY}",
        },
        timeout=settings.REST_TIMEOUT,
    )


@asynccontextmanager
async def open_data_service(db: Session):
    if settings.DATA_BACKEND == "rest":
        from freshsoda.services.rest_data import RestDataService

        async with rest_client() as client:
            yield RestDataService(client)
    else:
        from freshsoda.services.sql_data import SqlDataService

        yield SqlDataService(db)
