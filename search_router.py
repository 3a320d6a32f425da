# search_router.py

import logging
from datetime import datetime
from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import ai_search
import models
import policy
import schemas
from db import get_db
from auth import get_optional_user
from conversation_router import get_owned_conversation

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 50
IMAGE_ONLY_TITLE = "Image search"

router = APIRouter(
    tags=["ai-search"]
)


def conversation_title(query: str) -> str:
    query = (query or "").strip()
    if not query:
        return IMAGE_ONLY_TITLE
    if len(query) <= TITLE_MAX_LENGTH:
        return query
    return query[:TITLE_MAX_LENGTH] + "..."


def _append_message(db: Session, conv_id: str, role: str, content: str, relevant_ids=None) -> bool:
    """Store one turn; failures are logged and swallowed so the answer still goes out."""
    try:
        db.add(models.Message(
            conversation_id=conv_id,
            role=role,
            content=content,
            relevant_ids=relevant_ids,
        ))
        db.query(models.Conversation).filter(models.Conversation.id == conv_id).update(
            {"updated_at": datetime.utcnow()}, synchronize_session=False
        )
        db.commit()
        return True
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to store %s message in conversation %s", role, conv_id)
        return False


def _start_conversation(db: Session, user: models.User, query: str):
    try:
        conv = models.Conversation(user_id=user.id, title=conversation_title(query))
        db.add(conv)
        db.commit()
        db.refresh(conv)
        return conv.id
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to start a conversation for user %s", user.id)
        return None


# ─── POST /ai-search ──────────────────────────────────────────────────────────
@router.post("/ai-search", response_model=schemas.SearchResponse)
def ai_search_endpoint(
    body: schemas.SearchRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_optional_user)
):
    persist = policy.can_persist_conversations(current_user)

    # A foreign or unknown conversation is rejected before the model is called
    conv_id = None
    if persist and body.conversation_id:
        conv_id = get_owned_conversation(db, current_user, body.conversation_id).id

    history = [turn.model_dump() for turn in body.history]
    result = ai_search.search(db, body.query, image=body.image, history=history)

    if persist:
        if conv_id is None:
            conv_id = _start_conversation(db, current_user, body.query)
        if conv_id is not None:
            user_text = (body.query or "").strip() or ai_search.IMAGE_ONLY_PROMPT
            _append_message(db, conv_id, "user", user_text)
            _append_message(db, conv_id, "assistant", result.answer, result.relevant_ids)

    return {
        "answer": result.answer,
        "relevantSolutions": result.items,
        "conversationId": conv_id,
    }
