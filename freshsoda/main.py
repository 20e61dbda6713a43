from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from freshsoda.middleware import RequestIdMiddleware
from freshsoda.db import Base, engine
from freshsoda.config import settings
from freshsoda.services.autoloadout import LoadOutScheduler, run_scheduled_loadout
from freshsoda.util.logs import configure_logging

import freshsoda.models  # noqa: F401  (register tables)
from freshsoda.routers import auth, admin, catalog, warehouse, stock, sales, summary, loadout, printjob

app = FastAPI(title="Fresh Soda API", version="0.1.0")

@app.on_event("startup")
def init_app():
    configure_logging(settings.LOG_LEVEL)
    Base.metadata.create_all(bind=engine)
    app.state.scheduler = LoadOutScheduler(run_scheduled_loadout)

@app.on_event("shutdown")
async def stop_timers():
    scheduler = getattr(app.state, "scheduler", None)
    if scheduler:
        await scheduler.shutdown()

# Middlewares
app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(admin.router)
app.include_router(catalog.router)
app.include_router(warehouse.router)
app.include_router(stock.router)
app.include_router(sales.router)
app.include_router(summary.router)
app.include_router(loadout.router)
app.include_router(printjob.router)

@app.get("/healthz")
def healthz():
    return {"ok": True}
