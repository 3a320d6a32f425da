# ai_search.py
"""Natural-language search over the knowledge base.

The whole store is rendered into the system prompt of a hosted chat-completion
model, which is asked to answer as JSON ``{"answer": ..., "relevantIds": [...]}``.
Replies that are not clean JSON still produce an answer: the raw text.
"""

import os
import re
import json
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import requests
from dotenv import load_dotenv
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import models
from errors import (
    PersistenceFailure,
    UpstreamGenericFailure,
    UpstreamQuotaExhausted,
    UpstreamRateLimited,
    ValidationError,
)

logger = logging.getLogger(__name__)

load_dotenv()
AI_API_KEY = os.getenv("AI_API_KEY")
AI_BASE_URL = os.getenv("AI_BASE_URL", "https://api.groq.com/openai/v1")
AI_MODEL = os.getenv("AI_MODEL", "meta-llama/llama-4-scout-17b-16e-instruct")
AI_TIMEOUT = float(os.getenv("AI_TIMEOUT", "60"))

NO_CONTENT_ANSWER = (
    "No content has been added to the knowledge base yet. Add some solutions, "
    "installation guides or upgrades first to enable AI-powered search."
)
IMAGE_ONLY_PROMPT = "What is shown in this image? Find related content."
MAX_ANSWER_WORDS = 300
MAX_RELEVANT_IDS = 5

KIND_LABELS = {
    models.KIND_SOLUTION: "Solution",
    models.KIND_GUIDE: "Installation Guide",
    models.KIND_UPGRADE: "Upgrade",
}

# First "{" through the last "}", so code fences and prose around the object are tolerated
JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


@dataclass
class SearchResult:
    answer: str
    items: List[models.ContentItem] = field(default_factory=list)
    relevant_ids: List[str] = field(default_factory=list)


# ─── Step 1: context ──────────────────────────────────────────────────────────
def fetch_content(db: Session) -> List[models.ContentItem]:
    try:
        return (
            db.query(models.ContentItem)
              .order_by(models.ContentItem.created_at.desc())
              .all()
        )
    except SQLAlchemyError:
        logger.exception("Failed to load knowledge base content")
        raise PersistenceFailure("Failed to load knowledge base content")


def render_item(item: models.ContentItem, position: int) -> str:
    label = KIND_LABELS.get(item.kind, item.kind)
    lines = [
        f"[{label} {position}]",
        f"Title: {item.title}",
        f"Description: {item.description}",
    ]
    if item.steps:
        lines.append(f"Steps:\n{item.steps}")
    lines.append(f"ID: {item.id}")
    lines.append(f"Type: {item.kind}")
    return "\n".join(lines)


def build_context(items: List[models.ContentItem]) -> str:
    return "\n\n".join(render_item(item, i + 1) for i, item in enumerate(items))


# ─── Step 2: prompt ───────────────────────────────────────────────────────────
def build_system_prompt(context: str) -> str:
    return f"""You are an expert technical support assistant for a knowledge base of solutions, installation guides and upgrade procedures. Help users solve problems using the stored content below.

Here is all the available content in the knowledge base:

{context}

Response rules:
1. Identify the most relevant item(s) for the user's question.
2. Give the answer as plain numbered steps (1. 2. 3.), one step per line.
3. Do not use markdown, asterisks, headings or any other markup.
4. Keep the answer under {MAX_ANSWER_WORDS} words.
5. Mention the title of each item your answer is based on.
6. If nothing matches, say so politely and ask for more details.

Reply with JSON only, in exactly this shape:
{{"answer": "your answer here", "relevantIds": ["id1", "id2"]}}
relevantIds lists the IDs of the relevant items, at most {MAX_RELEVANT_IDS}."""


def build_messages(context: str, query: Optional[str], image: Optional[str] = None, history=None) -> list:
    messages = [{"role": "system", "content": build_system_prompt(context)}]
    for turn in history or []:
        messages.append({"role": turn["role"], "content": turn["content"]})

    text = query or IMAGE_ONLY_PROMPT
    if image:
        messages.append({
            "role": "user",
            "content": [
                {"type": "text", "text": text},
                {"type": "image_url", "image_url": {"url": image}},
            ],
        })
    else:
        messages.append({"role": "user", "content": text})
    return messages


# ─── Step 3: model call ───────────────────────────────────────────────────────
def call_model(messages: list) -> str:
    """Send one chat-completion request and return the reply text. Never retries."""
    if not AI_API_KEY:
        raise UpstreamGenericFailure("AI service is not configured")

    headers = {
        "Authorization": f"Bearer {AI_API_KEY}",
        "Content-Type": "application/json",
    }
    payload = {
        "model": AI_MODEL,
        "messages": messages,
    }
    try:
        r = requests.post(
            f"{AI_BASE_URL}/chat/completions",
            headers=headers,
            json=payload,
            timeout=AI_TIMEOUT,
        )
    except requests.exceptions.RequestException as e:
        logger.error("AI gateway unreachable: %s", e)
        raise UpstreamGenericFailure()

    if r.status_code == 429:
        raise UpstreamRateLimited()
    if r.status_code == 402:
        raise UpstreamQuotaExhausted()
    if not r.ok:
        logger.error("AI gateway error: %s %s", r.status_code, r.text)
        raise UpstreamGenericFailure()

    try:
        data = r.json()
        return data["choices"][0]["message"].get("content") or ""
    except (ValueError, KeyError, IndexError, TypeError, AttributeError):
        logger.error("AI gateway returned an unexpected body: %s", r.text)
        raise UpstreamGenericFailure()


# ─── Step 4: reply parsing ────────────────────────────────────────────────────
def parse_reply(reply: str):
    """Return ``(answer, relevant_ids)`` from the model's free-text reply.

    Falls back to the raw reply and no ids whenever the embedded JSON is
    missing or unusable.
    """
    match = JSON_OBJECT_RE.search(reply)
    if not match:
        return reply, []
    try:
        parsed = json.loads(match.group(0))
    except ValueError:
        return reply, []
    if not isinstance(parsed, dict) or not isinstance(parsed.get("answer"), str):
        return reply, []

    ids = parsed.get("relevantIds")
    if not isinstance(ids, list):
        ids = []
    return parsed["answer"], [i for i in ids if isinstance(i, str)]


# ─── Step 5: references ───────────────────────────────────────────────────────
def resolve_references(items: List[models.ContentItem], relevant_ids: List[str]) -> List[models.ContentItem]:
    wanted = set(relevant_ids)
    return [item for item in items if item.id in wanted]


def search(db: Session, query: Optional[str], image: Optional[str] = None, history=None) -> SearchResult:
    query = (query or "").strip()
    if not query and not image:
        raise ValidationError("Please enter a question or attach an image")

    items = fetch_content(db)
    if not items:
        return SearchResult(answer=NO_CONTENT_ANSWER)

    messages = build_messages(build_context(items), query, image, history)
    reply = call_model(messages)
    logger.debug("AI reply: %s", reply)

    answer, relevant_ids = parse_reply(reply)
    matched = resolve_references(items, relevant_ids)
    return SearchResult(
        answer=answer,
        items=matched,
        relevant_ids=[item.id for item in matched],
    )
