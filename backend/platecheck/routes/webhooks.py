"""
Webhook routes - machine-to-machine callbacks from the analyzer
"""
from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from ..db import get_db
from ..schemas import CallbackAck
from ..services import callback
from ..logger import logger

router = APIRouter(prefix="/webhook", tags=["Webhooks"])

@router.post("/analyzer-callback", response_model=CallbackAck)
async def analyzer_callback(
    request: Request,
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
):
    """
    Receive a finished (or failed) analysis from the analyzer.

    Any non-2xx answer tells the analyzer the result was not stored.
    """
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("Callback body is not valid JSON")
        payload = None

    return await callback.ingest(authorization, payload, db)
