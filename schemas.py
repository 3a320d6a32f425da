# schemas.py

from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from typing import List, Literal, Optional

# ---------- User-related schemas ----------

class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    display_name: Optional[str] = None

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

class UserOut(BaseModel):
    id: str
    email: EmailStr
    created_at: datetime

    class Config:
        from_attributes = True


class Token(BaseModel):
    access_token: str
    token_type: str  # e.g. "bearer"
    login_code: Optional[str] = None  # shown once, usable for a later password reset


class PasswordChange(BaseModel):
    new_password: str = Field(min_length=6)


class ResetPasswordRequest(BaseModel):
    # Checked by hand so the caller gets a single combined message
    email: Optional[str] = None
    reset_code: Optional[str] = Field(default=None, alias="resetCode")
    new_password: Optional[str] = Field(default=None, alias="newPassword")

    class Config:
        populate_by_name = True


# ---------- Profile / role schemas ----------

class ProfileOut(BaseModel):
    id: str
    user_id: str
    email: str
    display_name: Optional[str] = None
    status: str
    created_at: datetime

    class Config:
        from_attributes = True

class MeOut(BaseModel):
    id: str
    email: str
    profile: Optional[ProfileOut] = None
    roles: List[str]

class RoleGrant(BaseModel):
    role: Literal["admin", "user"]

class ResetCodeOut(BaseModel):
    id: str
    user_id: str
    code: str
    used: bool
    created_at: datetime

    class Config:
        from_attributes = True


# ---------- Content schemas ----------

class ContentCreate(BaseModel):
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    steps: Optional[str] = None
    image_url: Optional[str] = None

class ContentUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = Field(default=None, min_length=1)
    steps: Optional[str] = None
    image_url: Optional[str] = None

class ContentOut(BaseModel):
    id: str
    kind: str
    title: str
    description: str
    steps: Optional[str] = None
    image_url: Optional[str] = None
    user_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

class ImageOut(BaseModel):
    url: str


# ---------- AI search schemas ----------

class HistoryTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str

class SearchRequest(BaseModel):
    query: Optional[str] = None
    image: Optional[str] = Field(default=None, alias="imageInline")  # data URL, never stored
    history: List[HistoryTurn] = Field(default_factory=list, alias="conversationHistory")
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")

    class Config:
        populate_by_name = True

class SearchResponse(BaseModel):
    answer: str
    relevantSolutions: List[ContentOut]
    conversationId: Optional[str] = None


# ---------- Conversation-related schemas ----------

class ConversationCreate(BaseModel):
    title: Optional[str] = "New Conversation"

class ConversationUpdate(BaseModel):
    title: str = Field(min_length=1)

class ConversationOut(BaseModel):
    id: str
    title: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# ---------- Chat message schemas ----------

class MessageOut(BaseModel):
    id: str
    role: str
    content: str
    relevant_ids: Optional[List[str]] = None
    created_at: datetime

    class Config:
        from_attributes = True

class ChatHistory(BaseModel):
    messages: List[MessageOut]
