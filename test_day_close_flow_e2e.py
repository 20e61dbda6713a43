# test_day_close_flow_e2e.py
import time
import uuid
from datetime import date

from freshsoda.services.autoloadout import local_now

DAY = "2025-01-10"

def jprint(step, r):
    """Helper to print response and assert on failure."""
    assert 200 <= r.status_code < 300, f"{step} -> {r.status_code}: {r.text}"
    return r.json() if r.headers.get("content-type","").startswith("application/json") else r.text

def _route(client, base_url, auth_headers, name):
    r = client.post(f"{base_url}/catalog/routes", headers=auth_headers, json={"name": name})
    return jprint("POST /catalog/routes", r)["id"]

def _product(client, base_url, auth_headers, name, boxes=10):
    r = client.post(f"{base_url}/catalog/products", headers=auth_headers, json={
        "name": name, "price": 240, "box_price": 240, "pcs_price": 10, "pcs_per_box": 24,
    })
    pid = jprint("POST /catalog/products", r)["id"]
    r = client.post(f"{base_url}/warehouse/stock", headers=auth_headers,
                    json={"product_id": pid, "boxes": boxes, "pcs": 0, "note": "opening"})
    jprint("POST /warehouse/stock", r)
    return pid

def _assign(client, base_url, auth_headers, route_id, driver_id, pid, day=DAY, box_qty=3, pcs_qty=0):
    return client.post(f"{base_url}/stock/assign", headers=auth_headers, json={
        "route_id": route_id, "date": day, "driver_id": driver_id,
        "items": [{"product_id": pid, "box_qty": box_qty, "pcs_qty": pcs_qty}],
    })

def _warehouse_row(client, base_url, auth_headers, pid):
    rows = jprint("GET /warehouse/stock", client.get(f"{base_url}/warehouse/stock", headers=auth_headers))
    return next(w for w in rows if w["product_id"] == pid)

def test_assign_sell_summarize_and_load_out(client, base_url, auth_headers, driver_headers, boot, rng_suffix):
    driver_id = boot["driver_id"]
    route_id = _route(client, base_url, auth_headers, f"Route-{rng_suffix}")
    pid = _product(client, base_url, auth_headers, f"Soda-A-{rng_suffix}")

    # ===== 1. Admin assigns 3 boxes to the driver =====
    jprint("POST /stock/assign", _assign(client, base_url, auth_headers, route_id, driver_id, pid))
    w = _warehouse_row(client, base_url, auth_headers, pid)
    assert (w["boxes"], w["pcs"]) == (7, 0)

    r = client.get(f"{base_url}/stock/assigned", headers=driver_headers, params={"route_id": route_id, "date": DAY})
    (row,) = jprint("GET /stock/assigned", r)
    assert (row["box_qty"], row["pcs_qty"]) == (3, 0)

    # ===== 2. Driver bills a shop one box =====
    r = client.post(f"{base_url}/sales", headers=driver_headers, json={
        "route_id": route_id, "date": DAY, "shop_name": "Corner Store",
        "lines": [{"product_id": pid, "unit": "box", "quantity": 1}],
    })
    sale = jprint("POST /sales", r)
    assert sale["total_amount"] == 240.0
    assert sale["invoice_no"].startswith("INV-20250110-")

    # ===== 3. Day summary =====
    r = client.get(f"{base_url}/summary", headers=driver_headers, params={"date": DAY, "route_id": route_id})
    s = jprint("GET /summary", r)
    (item,) = s["items"]
    assert (item["start_box"], item["start_pcs"]) == (3, 0)
    assert (item["sold_box"], item["sold_pcs"]) == (1, 0)
    assert (item["remaining_box"], item["remaining_pcs"]) == (2, 0)
    assert item["total_revenue"] == 240.0
    assert s["grand_total"] == 240.0
    assert s["has_assigned_stock"] is True
    assert s["driver_id"] == driver_id
    assert s["no_data"] is False

    r = client.get(f"{base_url}/summary/receipt", headers=driver_headers, params={"date": DAY, "route_id": route_id})
    text = jprint("GET /summary/receipt", r)
    assert f"Route : Route-{rng_suffix}" in text
    assert "Total Revenue: ₹240.00" in text

    # ===== 4. Load-out =====
    r = client.post(f"{base_url}/loadout", headers=driver_headers, json={"route_id": route_id, "date": DAY})
    out = jprint("POST /loadout", r)
    assert out["ok"] is True
    assert out["run"]["status"] == "COMPLETED"
    assert out["run"]["trigger"] == "MANUAL"
    assert out["run"]["remaining_before"] == 48
    assert out["run"]["remaining_after"] == 0
    assert out["navigate_to"] == "/driver/dashboard"
    assert out["navigate_after_ms"] == 1500
    steps = {m["step"] for m in out["run"]["markers"]}
    assert steps == {"PRECHECK", "RETURN_TO_WAREHOUSE", "RETURN_RPC", "CLEAR_DAILY_STOCK", "VERIFY"}

    w = _warehouse_row(client, base_url, auth_headers, pid)
    assert (w["boxes"], w["pcs"]) == (9, 0)
    r = client.get(f"{base_url}/warehouse/movements", headers=auth_headers, params={"product_id": pid})
    types = [m["movement_type"] for m in jprint("GET /warehouse/movements", r)]
    assert types[0] == "RETURN"
    assert set(types) == {"IN", "ASSIGN", "RETURN"}

    # ===== 5. Nothing left: the day cannot be loaded out again =====
    r = client.post(f"{base_url}/loadout", headers=driver_headers, json={"route_id": route_id, "date": DAY})
    assert r.status_code == 400, r.text
    w = _warehouse_row(client, base_url, auth_headers, pid)
    assert (w["boxes"], w["pcs"]) == (9, 0)

    r = client.post(f"{base_url}/sales", headers=driver_headers, json={
        "route_id": route_id, "date": DAY, "lines": [{"product_id": pid, "unit": "pcs", "quantity": 1}],
    })
    assert r.status_code == 400, r.text

    runs = jprint("GET /loadout/runs", client.get(f"{base_url}/loadout/runs", headers=driver_headers,
                                                   params={"route_id": route_id}))
    assert [x["status"] for x in runs] == ["COMPLETED"]
    got = jprint("GET /loadout/runs/{id}", client.get(f"{base_url}/loadout/runs/{runs[0]['id']}", headers=driver_headers))
    assert got["id"] == runs[0]["id"]

def test_assignment_is_validated_before_any_write(client, base_url, auth_headers, driver_headers, boot, rng_suffix):
    driver_id = boot["driver_id"]
    route_id = _route(client, base_url, auth_headers, f"Val-{rng_suffix}")
    pid = _product(client, base_url, auth_headers, f"Val-Soda-{rng_suffix}", boxes=2)

    r = _assign(client, base_url, auth_headers, route_id, driver_id, pid, box_qty=5)
    assert r.status_code == 409, r.text
    r = _assign(client, base_url, auth_headers, route_id, driver_id, pid, box_qty=0)
    assert r.status_code == 400, r.text
    r = _assign(client, base_url, auth_headers, str(uuid.uuid4()), driver_id, pid)
    assert r.status_code == 400, r.text
    r = client.post(f"{base_url}/stock/assign", headers=auth_headers,
                    json={"route_id": route_id, "date": DAY, "items": []})
    assert r.status_code == 422, r.text
    r = _assign(client, base_url, driver_headers, route_id, driver_id, pid, box_qty=1)
    assert r.status_code == 403, r.text

    w = _warehouse_row(client, base_url, auth_headers, pid)
    assert (w["boxes"], w["pcs"]) == (2, 0)

    # a box broken into pieces on the truck
    jprint("POST /stock/assign", _assign(client, base_url, auth_headers, route_id, driver_id, pid,
                                         box_qty=0, pcs_qty=30))
    w = _warehouse_row(client, base_url, auth_headers, pid)
    assert (w["boxes"], w["pcs"]) == (0, 18)

    r = client.post(f"{base_url}/sales", headers=driver_headers, json={
        "route_id": route_id, "date": DAY, "lines": [{"product_id": pid, "unit": "box", "quantity": 2}],
    })
    assert r.status_code == 409, r.text

def test_summary_without_data(client, base_url, auth_headers, rng_suffix):
    route_id = _route(client, base_url, auth_headers, f"Empty-{rng_suffix}")
    r = client.get(f"{base_url}/summary", headers=auth_headers, params={"date": DAY, "route_id": route_id})
    s = jprint("GET /summary", r)
    assert s["no_data"] is True
    assert s["items"] == []
    assert s["message"]
    r = client.get(f"{base_url}/summary/receipt", headers=auth_headers, params={"date": DAY, "route_id": route_id})
    assert r.status_code == 404

def test_admin_end_route_approval(client, base_url, auth_headers, driver_headers, boot, rng_suffix):
    driver_id = boot["driver_id"]
    route_id = _route(client, base_url, auth_headers, f"Approve-{rng_suffix}")
    pid = _product(client, base_url, auth_headers, f"Approve-Soda-{rng_suffix}")
    jprint("POST /stock/assign", _assign(client, base_url, auth_headers, route_id, driver_id, pid, box_qty=1, pcs_qty=6))

    q = {"driver_id": driver_id, "route_id": route_id, "date": DAY}
    r = client.get(f"{base_url}/admin/end_route", headers=driver_headers, params=q)
    assert r.status_code == 403
    pending = jprint("GET /admin/end_route", client.get(f"{base_url}/admin/end_route", headers=auth_headers, params=q))
    assert pending["total_remaining"] == 30

    out = jprint("POST /admin/end_route/approve",
                 client.post(f"{base_url}/admin/end_route/approve", headers=auth_headers, json=q))
    assert out["run"]["trigger"] == "ADMIN"
    assert out["run"]["status"] == "COMPLETED"

    pending = jprint("GET /admin/end_route", client.get(f"{base_url}/admin/end_route", headers=auth_headers, params=q))
    assert pending["total_remaining"] == 0
    # returned stock is credited as counted, not re-boxed
    w = _warehouse_row(client, base_url, auth_headers, pid)
    assert (w["boxes"], w["pcs"]) == (9, 24)
    assert w["total_pcs"] == 240

def test_open_summary_of_past_day_loads_out_by_itself(client, base_url, auth_headers, driver_headers, boot, rng_suffix):
    driver_id = boot["driver_id"]
    route_id = _route(client, base_url, auth_headers, f"Auto-{rng_suffix}")
    pid = _product(client, base_url, auth_headers, f"Auto-Soda-{rng_suffix}")
    jprint("POST /stock/assign", _assign(client, base_url, auth_headers, route_id, driver_id, pid, box_qty=2))

    r = client.get(f"{base_url}/summary", headers=driver_headers,
                   params={"date": DAY, "route_id": route_id, "view_id": f"view-{rng_suffix}"})
    s = jprint("GET /summary (past day)", r)
    assert s["auto_loadout_at"] is not None

    runs = []
    deadline = time.time() + 5
    while time.time() < deadline:
        time.sleep(0.2)
        r = client.get(f"{base_url}/loadout/runs", headers=driver_headers, params={"route_id": route_id})
        runs = [x for x in jprint("GET /loadout/runs", r) if x["status"] != "RUNNING"]
        if runs:
            break
    assert [(x["trigger"], x["status"]) for x in runs] == [("AUTO", "COMPLETED")]
    w = _warehouse_row(client, base_url, auth_headers, pid)
    assert (w["boxes"], w["pcs"]) == (10, 0)

def test_open_summary_of_today_arms_until_view_closes(client, base_url, auth_headers, driver_headers, boot, rng_suffix):
    today = local_now().date()
    route_id = _route(client, base_url, auth_headers, f"Today-{rng_suffix}")
    pid = _product(client, base_url, auth_headers, f"Today-Soda-{rng_suffix}")
    jprint("POST /stock/assign", _assign(client, base_url, auth_headers, route_id, boot["driver_id"], pid,
                                         day=today.isoformat(), box_qty=1))

    view_id = f"today-{rng_suffix}"
    params = {"date": today.isoformat(), "route_id": route_id, "view_id": view_id}
    s = jprint("GET /summary (today)", client.get(f"{base_url}/summary", headers=driver_headers, params=params))
    assert date.fromisoformat(s["auto_loadout_at"][:10]) > today

    r = client.delete(f"{base_url}/summary/views/{view_id}", headers=driver_headers)
    assert jprint("DELETE /summary/views", r) == {"cancelled": True}
    r = client.delete(f"{base_url}/summary/views/{view_id}", headers=driver_headers)
    assert jprint("DELETE /summary/views", r) == {"cancelled": False}

def test_auth_is_required(client, base_url, boot):
    assert client.get(f"{base_url}/summary", params={"date": DAY, "route_id": "x"}).status_code == 401
    r = client.get(f"{base_url}/auth/me", headers={"Authorization": "Bearer not-a-token"})
    assert r.status_code == 401
    r = client.post(f"{base_url}/auth/login", params={"phone": "9999999999", "password": "wrong"})
    assert r.status_code == 401
