"""
Persisted records for the knowledge base, help requests and follow-ups.

Records are stored as JSON documents, so new optional fields can be added
without migrating existing rows.
"""

import uuid
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_record_id(prefix: str) -> str:
    """Opaque id such as ``req_1718000000000_k3j9x0a1b``"""
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class KnowledgeSource(str, Enum):
    INITIAL = "initial"
    LEARNED = "learned"


class RequestStatus(str, Enum):
    """Help request lifecycle states"""
    PENDING = "pending"
    RESOLVED = "resolved"
    TIMEOUT = "timeout"


class DeliveryStatus(str, Enum):
    """Whether a resolved answer has been handed to the customer"""
    UNDELIVERED = "undelivered"
    DELIVERING = "delivering"
    DELIVERED = "delivered"
    DEFERRED = "deferred"


class KnowledgeEntry(BaseModel):
    id: str
    question: str
    answer: str
    category: Optional[str] = None
    source: KnowledgeSource = KnowledgeSource.INITIAL
    created_at: datetime
    updated_at: datetime


class EscalationRequest(BaseModel):
    id: str
    customer_phone: str
    customer_name: Optional[str] = None
    question: str
    context: Optional[str] = None
    status: RequestStatus = RequestStatus.PENDING
    created_at: datetime
    timeout_at: datetime
    resolved_at: Optional[datetime] = None
    supervisor_answer: Optional[str] = None
    delivery_status: DeliveryStatus = DeliveryStatus.UNDELIVERED
    delivery_claimed_at: Optional[datetime] = None
    settled_at: Optional[datetime] = None
    revision: int = 0

    @model_validator(mode="after")
    def _answer_and_timestamp_together(self):
        if (self.resolved_at is None) != (self.supervisor_answer is None):
            raise ValueError("resolved_at and supervisor_answer must be set together")
        return self

    def is_expired(self, now: datetime) -> bool:
        return self.status == RequestStatus.PENDING and self.timeout_at < now


class PendingFollowUp(BaseModel):
    id: str
    customer_phone: str
    message: str
    created_at: datetime
    delivered_at: Optional[datetime] = None
    revision: int = 0
