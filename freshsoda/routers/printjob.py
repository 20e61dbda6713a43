import logging
from datetime import date

import httpx
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from freshsoda.config import settings
from freshsoda.db import get_db
from freshsoda.deps import Actor, require_auth, get_data_service
from freshsoda.routers.summary import NO_DATA, load_summary, receipt_text, scope_driver
from freshsoda.services.data import DataService
from freshsoda.util.audit import audit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/print", tags=["print"])


async def _post_agent(url: str, payload: dict) -> bool:
    """POST to the local print agent. The day close never waits on a printer."""
    try:
        async with httpx.AsyncClient(timeout=3) as client:
            r = await client.post(url, json=payload)
            r.raise_for_status()
        return True
    except httpx.HTTPError as e:
        logger.warning("print agent %s unavailable: %s", url, e)
        return False


@router.post("/summary")
async def print_summary(date: date, route_id: str, driver_id: str | None = None,
                        db: Session = Depends(get_db),
                        data: DataService = Depends(get_data_service),
                        actor: Actor = Depends(require_auth)):
    if not settings.PRINT_AGENT_URL:
        raise HTTPException(400, detail="No print agent configured")
    summary = await load_summary(data, date, route_id, scope_driver(actor, driver_id))
    if summary.is_empty:
        raise HTTPException(404, detail=NO_DATA)
    text = await receipt_text(data, summary)
    printed = await _post_agent(settings.PRINT_AGENT_URL, {"type": "DAY_SUMMARY", "text": text})

    audit(db, actor.id, "summary", route_id, "PRINT_SUMMARY", after={"date": date, "printed": printed})
    db.commit()
    return {"printed": printed}
