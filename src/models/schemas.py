from pydantic import BaseModel
from typing import Optional


class HelpRequestCreate(BaseModel):
    customer_phone: str
    question: str
    customer_name: Optional[str] = None
    context: Optional[str] = None


class RespondRequestBody(BaseModel):
    # Optional here so a missing answer maps to 400 rather than 422
    answer: Optional[str] = None
    category: Optional[str] = None


class KBEntry(BaseModel):
    question: str
    answer: str
    category: Optional[str] = None


class TokenRequest(BaseModel):
    roomName: str
    participantName: str
    customerPhone: Optional[str] = None
