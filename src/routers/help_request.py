"""
Help Request Router
Handles all help request endpoints
"""

from fastapi import APIRouter, HTTPException, Depends
from typing import Optional
import logging

from src.core.exceptions import (
    ConcurrentUpdateError,
    InvalidStateError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from src.models.records import RequestStatus
from src.models.schemas import HelpRequestCreate, RespondRequestBody
from src.services.help_request import HelpRequestService
from src.core.dependencies import get_help_request_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/help-requests",
    tags=["Help Requests"]
)


def _dump(request) -> dict:
    return request.model_dump(mode="json", exclude={"revision"})


@router.get("", response_model=dict)
async def get_all_requests(
    status: Optional[RequestStatus] = None,
    service: HelpRequestService = Depends(get_help_request_service)
):
    """Get all help requests, optionally filtered by status"""
    try:
        requests = service.get_all_requests(status)
        return {
            "success": True,
            "count": len(requests),
            "requests": [_dump(r) for r in requests]
        }
    except StorageError as e:
        logger.error(f"Error fetching requests: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("", response_model=dict)
async def create_request(
    body: HelpRequestCreate,
    service: HelpRequestService = Depends(get_help_request_service)
):
    """Escalate a question to the supervisor"""
    try:
        request = await service.create_request(
            customer_phone=body.customer_phone,
            question=body.question,
            customer_name=body.customer_name,
            context=body.context,
        )
        return {
            "success": True,
            "request_id": request.id,
            "request": _dump(request)
        }
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StorageError as e:
        logger.error(f"Error creating help request: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/stats", response_model=dict)
async def get_stats(
    service: HelpRequestService = Depends(get_help_request_service)
):
    """Get statistics about help requests"""
    try:
        return {
            "success": True,
            "stats": service.get_stats()
        }
    except StorageError as e:
        logger.error(f"Error fetching stats: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/pending", response_model=dict)
async def get_pending_requests(
    service: HelpRequestService = Depends(get_help_request_service)
):
    """Get all pending help requests (expired ones are timed out first)"""
    try:
        requests = await service.get_pending_requests()
        return {
            "success": True,
            "count": len(requests),
            "requests": [_dump(r) for r in requests]
        }
    except StorageError as e:
        logger.error(f"Error fetching pending requests: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/maintenance/check-timeouts", response_model=dict)
async def check_timeouts(
    service: HelpRequestService = Depends(get_help_request_service)
):
    """Mark every request past its deadline as timed out"""
    try:
        count = await service.check_timeouts()
        return {
            "success": True,
            "timed_out_count": count,
            "message": f"Marked {count} requests as timed out"
        }
    except StorageError as e:
        logger.error(f"Error checking timeouts: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/maintenance/unlearned", response_model=dict)
async def get_unlearned_resolutions(
    service: HelpRequestService = Depends(get_help_request_service)
):
    """Resolved requests whose answer never made it into the knowledge base"""
    try:
        requests = service.find_unlearned_resolutions()
        return {
            "success": True,
            "count": len(requests),
            "requests": [_dump(r) for r in requests]
        }
    except StorageError as e:
        logger.error(f"Error checking learned entries: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{request_id}", response_model=dict)
async def get_request_details(
    request_id: str,
    service: HelpRequestService = Depends(get_help_request_service)
):
    """Get details of specific help request"""
    try:
        return {
            "success": True,
            "request": _dump(service.get_request(request_id))
        }
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Help request not found")
    except StorageError as e:
        logger.error(f"Error fetching request {request_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{request_id}/respond", response_model=dict)
async def respond_to_request(
    request_id: str,
    body: RespondRequestBody,
    service: HelpRequestService = Depends(get_help_request_service)
):
    """
    Supervisor answers a help request
    This triggers:
    1. Update request status to resolved
    2. Add answer to knowledge base
    3. Speak the answer to the customer if they are still on the call
    """
    try:
        result = await service.resolve_request(
            request_id=request_id,
            answer=body.answer,
            category=body.category
        )
        return {
            "success": True,
            "request": _dump(result.request),
            "knowledge_entry": result.knowledge_entry.model_dump(mode="json"),
            "delivered": result.delivered
        }
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Help request not found")
    except (InvalidStateError, ConcurrentUpdateError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except StorageError as e:
        logger.error(f"Error resolving request {request_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))
