from fastapi import APIRouter, HTTPException, Depends
from typing import Optional
import logging

from src.core.exceptions import StorageError
from src.services.follow_up import FollowUpService
from src.core.dependencies import get_follow_up_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/follow-ups",
    tags=["Follow-ups"]
)


@router.get("")
async def get_pending_follow_ups(
    customer_phone: Optional[str] = None,
    service: FollowUpService = Depends(get_follow_up_service)
):
    """Answers still waiting for the customer's next call"""
    try:
        follow_ups = service.get_pending(customer_phone)
        return {
            "success": True,
            "count": len(follow_ups),
            "follow_ups": [f.model_dump(mode="json", exclude={"revision"}) for f in follow_ups]
        }
    except StorageError as e:
        logger.error(f"Error fetching follow-ups: {e}")
        raise HTTPException(status_code=500, detail=str(e))
