# conversation_router.py

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List

import models
import policy
import schemas
from db import commit_or_fail, get_db
from auth import get_current_user
from errors import NotFound

router = APIRouter(
    prefix="/conversations",
    tags=["conversations"]
)


def get_owned_conversation(db: Session, user: models.User, conv_id: str) -> models.Conversation:
    conv = db.query(models.Conversation).filter(models.Conversation.id == conv_id).first()
    # Someone else's conversation looks exactly like a missing one
    if not conv or not policy.can_access_conversation(user, conv):
        raise NotFound("Conversation not found")
    return conv


# GET /conversations → list all conversations for the current user, most recently active first
@router.get("/", response_model=List[schemas.ConversationOut])
def list_conversations(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    convs = (
        db.query(models.Conversation)
          .filter(models.Conversation.user_id == current_user.id)
          .order_by(models.Conversation.updated_at.desc())
          .all()
    )
    return convs

# POST /conversations → create a new conversation for the current user
@router.post("/", response_model=schemas.ConversationOut, status_code=201)
def create_conversation(
    conv: schemas.ConversationCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    new_conv = models.Conversation(
        user_id=current_user.id,
        title=conv.title or "New Conversation"
    )
    db.add(new_conv)
    commit_or_fail(db, "create conversation")
    db.refresh(new_conv)
    return new_conv

# GET /conversations/{conv_id}/messages → the turns of one conversation, oldest first
@router.get("/{conv_id}/messages", response_model=schemas.ChatHistory)
def get_history_for_conversation(
    conv_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    get_owned_conversation(db, current_user, conv_id)
    msgs = (
        db.query(models.Message)
          .filter(models.Message.conversation_id == conv_id)
          .order_by(models.Message.created_at.asc())
          .all()
    )
    return {"messages": msgs}

# PATCH /conversations/{conv_id} → rename
@router.patch("/{conv_id}", response_model=schemas.ConversationOut)
def rename_conversation(
    conv_id: str,
    body: schemas.ConversationUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    conv = get_owned_conversation(db, current_user, conv_id)
    conv.title = body.title.strip()
    commit_or_fail(db, "rename conversation")
    db.refresh(conv)
    return conv

# DELETE /conversations/{conv_id} → delete a conversation (and its messages)
@router.delete("/{conv_id}", status_code=204)
def delete_conversation(
    conv_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user)
):
    conv = get_owned_conversation(db, current_user, conv_id)
    db.delete(conv)
    commit_or_fail(db, "delete conversation")
    return
