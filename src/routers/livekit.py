import json

from fastapi import APIRouter, HTTPException
from livekit import api

from src.core.config import settings
from src.core.logging import get_plain_logger
from src.models.schemas import TokenRequest

logger = get_plain_logger(__name__)

router = APIRouter(
    prefix="/api/livekit",
    tags=["Livekit agent"]
)


@router.post("/token")
async def generate_livekit_token(request: TokenRequest):
    """
    Generate LiveKit access token for the phone simulator

    The caller's phone number travels in participant metadata so the agent
    can route supervisor answers back to this call.
    """
    try:
        settings.require_livekit_credentials()
    except ValueError:
        raise HTTPException(
            status_code=500,
            detail="LiveKit credentials not configured. Check .env file."
        )

    customer_phone = request.customerPhone or request.participantName

    try:
        token = api.AccessToken(settings.livekit_api_key, settings.livekit_api_secret)
        token.with_identity(request.participantName)
        token.with_name(request.participantName)
        token.with_metadata(json.dumps({"customerPhone": customer_phone}))
        token.with_grants(api.VideoGrants(
            room_join=True,
            room=request.roomName,
            can_publish=True,
            can_subscribe=True,
        ))
        jwt_token = token.to_jwt()
    except Exception as e:
        logger.error(f"Error generating token: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return {
        "success": True,
        "token": jwt_token,
        "url": settings.livekit_url,
        "roomName": request.roomName,
        "customerPhone": customer_phone
    }
