# conftest.py
import os

# settings are read at import time
os.environ.setdefault("APP_SECRET", "test-secret")
os.environ.setdefault("DB_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("TZ", "Asia/Kolkata")
os.environ.setdefault("DATA_BACKEND", "sql")
os.environ.setdefault("APP_ENV", "dev")

import pytest
from fastapi.testclient import TestClient

from freshsoda.main import app
from freshsoda.db import SessionLocal

@pytest.fixture(scope="session")
def base_url():
    return "http://testserver"

@pytest.fixture(scope="session")
def client():
    # entering the client runs startup: tables and the auto load-out scheduler
    with TestClient(app) as c:
        yield c

@pytest.fixture(scope="session")
def boot(client, base_url):
    r = client.get(f"{base_url}/healthz")
    assert r.status_code == 200, f"/healthz failed: {r.text}"

    r = client.post(f"{base_url}/admin/dev-bootstrap")
    assert r.status_code == 200, f"/admin/dev-bootstrap failed: {r.text}"
    return r.json()

def _login(client, base_url, phone, password):
    r = client.post(f"{base_url}/auth/login", params={"phone": phone, "password": password})
    assert r.status_code == 200, f"/auth/login failed: {r.text}"
    return {"Authorization": f"Bearer {r.json()['access_token']}"}

@pytest.fixture(scope="session")
def auth_headers(client, base_url, boot):
    return _login(client, base_url, **boot["admin_login"])

@pytest.fixture(scope="session")
def driver_headers(client, base_url, boot):
    return _login(client, base_url, **boot["driver_login"])

@pytest.fixture(scope="session")
def rng_suffix():
    import random, string
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=6))

@pytest.fixture()
def db(client):
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()


# ---------- in-memory data service for workflow tests ----------

from freshsoda.schemas.catalog import ProductOut
from freshsoda.schemas.stock import AssignedStockRow, AssignedRemaining, MovementOut
from freshsoda.services.data import DataService, DataServiceError

class FakeData(DataService):
    """Ledgers in dicts. ``fail`` maps a call name (or ``add_warehouse_stock:<product_id>``)
    to the message it should fail with, until the key is removed."""

    def __init__(self, products=(), sales=(), stock=None, ledger=None, routes=()):
        self.products = list(products)
        self.routes = list(routes)
        self.sales = list(sales)
        self.stock = stock or {}     # (driver_id, route_id, date) -> {product_id: (boxes, pcs)}
        self.ledger = ledger or {}   # (driver_id, route_id, date) -> {product_id: qty_remaining}
        self.warehouse = {}          # product_id -> [boxes, pcs]
        self.movements = []
        self.calls = []
        self.fail = {}

    def _call(self, name, *args):
        self.calls.append((name, *args))
        for key in (name, f"{name}:{args[0] if args else ''}"):
            if key in self.fail:
                raise DataServiceError(self.fail[key])

    def called(self, name):
        return [c for c in self.calls if c[0] == name]

    async def get_products(self):
        self._call("get_products")
        return list(self.products)

    async def get_active_routes(self):
        self._call("get_active_routes")
        return list(self.routes)

    async def get_sales_for(self, work_date, route_id=None):
        self._call("get_sales_for", work_date, route_id)
        return [s for s in self.sales if s.date == work_date and (route_id is None or s.route_id == route_id)]

    async def get_assigned_stock_for_billing(self, driver_id, route_id, work_date):
        self._call("get_assigned_stock_for_billing", driver_id, route_id, work_date)
        by_id = {p.id: p for p in self.products}
        rows = self.stock.get((driver_id, route_id, work_date), {})
        return [(by_id[pid], AssignedStockRow(product_id=pid, box_qty=b, pcs_qty=p))
                for pid, (b, p) in rows.items()]

    async def add_warehouse_stock(self, product_id, boxes, pcs, note=None, movement_type="IN"):
        self._call("add_warehouse_stock", product_id, boxes, pcs, note, movement_type)
        cur = self.warehouse.setdefault(product_id, [0, 0])
        cur[0] += boxes
        cur[1] += pcs
        self.movements.insert(0, MovementOut(id=str(len(self.movements) + 1), product_id=product_id,
                                             movement_type=movement_type, boxes=boxes, pcs=pcs, note=note))

    def _zero(self, key):
        for pid in self.ledger.get(key, {}):
            self.ledger[key][pid] = 0

    async def end_route_return_stock_rpc(self, driver_id, route_id, work_date):
        self._call("end_route_return_stock_rpc", driver_id, route_id, work_date)
        self._zero((driver_id, route_id, work_date))

    async def end_route_return_stock_route_rpc(self, route_id, work_date):
        self._call("end_route_return_stock_route_rpc", route_id, work_date)
        self._zero((None, route_id, work_date))

    async def clear_daily_stock(self, driver_id, route_id, work_date):
        self._call("clear_daily_stock", driver_id, route_id, work_date)
        for key in list(self.stock):
            if key[1:] == (route_id, work_date) and (driver_id is None or key[0] == driver_id):
                self.stock[key] = {}

    def _remaining(self, key):
        return [AssignedRemaining(product_id=pid, qty_assigned=q, qty_remaining=q)
                for pid, q in self.ledger.get(key, {}).items()]

    async def get_route_assigned_stock(self, route_id, work_date):
        self._call("get_route_assigned_stock", route_id, work_date)
        return self._remaining((None, route_id, work_date))

    async def get_driver_assigned_stock(self, driver_id, route_id, work_date):
        self._call("get_driver_assigned_stock", driver_id, route_id, work_date)
        return self._remaining((driver_id, route_id, work_date))

    async def get_warehouse_movements(self, product_id=None, limit=50):
        self._call("get_warehouse_movements", product_id, limit)
        return [m for m in self.movements if product_id in (None, m.product_id)][:limit]

def soda(pid="soda-a", name="Soda-A", ppb=24, box_price=240.0, pcs_price=10.0):
    return ProductOut(id=pid, name=name, price=box_price, box_price=box_price,
                      pcs_price=pcs_price, pcs_per_box=ppb)

@pytest.fixture()
def make_data():
    return FakeData

@pytest.fixture()
def make_product():
    return soda
