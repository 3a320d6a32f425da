# content_router.py

import os
import uuid
import logging
from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from typing import List

import models
import policy
import schemas
from db import commit_or_fail, get_db
from auth import get_current_user, get_optional_user
from errors import NotFound, PersistenceFailure, ValidationError

logger = logging.getLogger(__name__)

UPLOAD_DIR = os.getenv("UPLOAD_DIR", os.path.join(os.getcwd(), "uploaded_images"))
IMAGE_URL_PREFIX = "/images"
IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".webp"}

# kind → URL prefix
KIND_PREFIXES = {
    models.KIND_SOLUTION: "/solutions",
    models.KIND_GUIDE: "/installation-guides",
    models.KIND_UPGRADE: "/upgrades",
}
KINDS_WITH_STEPS = {models.KIND_GUIDE, models.KIND_UPGRADE}


def _clean_steps(kind: str, steps):
    if kind not in KINDS_WITH_STEPS:
        return None
    if steps is None or not steps.strip():
        raise ValidationError("Steps are required")
    return steps.strip()


def get_item(db: Session, kind: str, item_id: str) -> models.ContentItem:
    item = (
        db.query(models.ContentItem)
          .filter(models.ContentItem.id == item_id, models.ContentItem.kind == kind)
          .first()
    )
    if not item:
        raise NotFound(f"{kind.capitalize()} not found")
    return item


def build_router(kind: str) -> APIRouter:
    """CRUD routes for one content kind; all kinds share the same table and rules."""
    router = APIRouter(prefix=KIND_PREFIXES[kind], tags=[kind])

    # GET / → every item of this kind, newest first
    @router.get("/", response_model=List[schemas.ContentOut])
    def list_items(
        db: Session = Depends(get_db),
        current_user: models.User = Depends(get_optional_user)
    ):
        try:
            items = (
                db.query(models.ContentItem)
                  .filter(models.ContentItem.kind == kind)
                  .order_by(models.ContentItem.created_at.desc())
                  .all()
            )
        except SQLAlchemyError:
            logger.exception("Failed to list %s items", kind)
            raise PersistenceFailure(f"Failed to load {kind} items")
        return [i for i in items if policy.can_read_content(current_user, i)]

    @router.get("/{item_id}", response_model=schemas.ContentOut)
    def read_item(
        item_id: str,
        db: Session = Depends(get_db),
        current_user: models.User = Depends(get_optional_user)
    ):
        item = get_item(db, kind, item_id)
        policy.ensure(policy.can_read_content(current_user, item))
        return item

    @router.post("/", response_model=schemas.ContentOut, status_code=201)
    def create_item(
        body: schemas.ContentCreate,
        db: Session = Depends(get_db),
        current_user: models.User = Depends(get_current_user)
    ):
        policy.ensure_can_insert_content(current_user)
        item = models.ContentItem(
            kind=kind,
            title=body.title.strip(),
            description=body.description.strip(),
            steps=_clean_steps(kind, body.steps),
            image_url=body.image_url,
            user_id=current_user.id,
        )
        db.add(item)
        commit_or_fail(db, f"save {kind}")
        db.refresh(item)
        logger.info("User %s created %s %s", current_user.id, kind, item.id)
        return item

    @router.put("/{item_id}", response_model=schemas.ContentOut)
    def update_item(
        item_id: str,
        body: schemas.ContentUpdate,
        db: Session = Depends(get_db),
        current_user: models.User = Depends(get_current_user)
    ):
        item = get_item(db, kind, item_id)
        policy.ensure_can_modify_content(current_user, item)

        if body.title is not None:
            item.title = body.title.strip()
        if body.description is not None:
            item.description = body.description.strip()
        if body.steps is not None:
            item.steps = _clean_steps(kind, body.steps)
        if "image_url" in body.model_fields_set:
            item.image_url = body.image_url
        commit_or_fail(db, f"update {kind}")
        db.refresh(item)
        return item

    @router.delete("/{item_id}", status_code=204)
    def delete_item(
        item_id: str,
        db: Session = Depends(get_db),
        current_user: models.User = Depends(get_current_user)
    ):
        item = get_item(db, kind, item_id)
        policy.ensure_can_modify_content(current_user, item)
        db.delete(item)
        commit_or_fail(db, f"delete {kind}")
        logger.info("User %s deleted %s %s", current_user.id, kind, item_id)
        return

    return router


routers = [build_router(kind) for kind in models.CONTENT_KINDS]


# ─── Image upload ──────────────────────────────────────────────────────────────
image_router = APIRouter(tags=["images"])

@image_router.post("/images", response_model=schemas.ImageOut, status_code=201)
def upload_image(
    file: UploadFile = File(...),
    current_user: models.User = Depends(get_current_user)
):
    policy.ensure_can_insert_content(current_user)

    ext = os.path.splitext(file.filename or "")[1].lower()
    if ext not in IMAGE_EXTENSIONS:
        raise ValidationError("Unsupported image type")

    os.makedirs(UPLOAD_DIR, exist_ok=True)
    stored_name = f"{uuid.uuid4()}{ext}"
    with open(os.path.join(UPLOAD_DIR, stored_name), "wb") as f:
        f.write(file.file.read())

    return {"url": f"{IMAGE_URL_PREFIX}/{stored_name}"}
