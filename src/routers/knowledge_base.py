from fastapi import APIRouter, HTTPException, Depends
from typing import Optional
import logging

from src.core.exceptions import StorageError
from src.models.records import KnowledgeSource
from src.models.schemas import KBEntry
from src.services import KnowledgeBaseService
from src.core.dependencies import get_knowledge_base_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/knowledge-base",
    tags=["Knowledge Base"]
)


@router.get("")
async def get_knowledge_base(
    source: Optional[KnowledgeSource] = None,
    service: KnowledgeBaseService = Depends(get_knowledge_base_service)
):
    """Get all known answers in store order"""
    try:
        entries = service.get_all_entries(source)
        return {
            "success": True,
            "count": len(entries),
            "entries": [e.model_dump(mode="json") for e in entries]
        }
    except StorageError as e:
        logger.error(f"Error fetching knowledge base: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("")
async def add_to_knowledge_base(entry: KBEntry, service: KnowledgeBaseService = Depends(get_knowledge_base_service)):
    """Manually add entry to knowledge base"""
    if not entry.question.strip() or not entry.answer.strip():
        raise HTTPException(status_code=400, detail="Question and answer are required")
    try:
        created = await service.add_answer(
            question=entry.question,
            answer=entry.answer,
            source=KnowledgeSource.INITIAL,
            category=entry.category
        )
        return {
            "success": True,
            "message": "Entry added to knowledge base",
            "entry": created.model_dump(mode="json")
        }
    except StorageError as e:
        logger.error(f"Error adding to knowledge base: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/search")
async def search_knowledge_base(query: str, service: KnowledgeBaseService = Depends(get_knowledge_base_service)):
    """Search knowledge base for answer"""
    try:
        match = await service.search(query)
        return {
            "success": True,
            "found": match is not None,
            "answer": match.model_dump(mode="json") if match else None,
            "score": service.resolver.score(query, match) if match else 0
        }
    except StorageError as e:
        logger.error(f"Error searching knowledge base: {e}")
        raise HTTPException(status_code=500, detail=str(e))
