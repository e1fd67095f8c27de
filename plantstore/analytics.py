# plantstore/analytics.py
from typing import Optional

from fastapi import APIRouter, Depends, status

from plantstore.auth.dependencies import AuthContext, authenticate_request
from plantstore.observability import get_logger
from plantstore.schemas import AnalyticsEventIn

logger = get_logger(__name__)

router = APIRouter()


@router.post("/event", status_code=status.HTTP_202_ACCEPTED)
def track_event(body: AnalyticsEventIn, context: Optional[AuthContext] = Depends(authenticate_request)):
    """Client-side events; signed-in callers are attributed, everyone else is ``anonymous``."""
    logger.info(
        "analytics_event",
        analytics_event=body.event,
        user_id=context.user.id if context else "anonymous",
        properties=body.properties,
    )
    return {"received": True}
