# admin_router.py

import logging
from fastapi import APIRouter, Depends
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from typing import List

import models
import policy
import schemas
from db import commit_or_fail, get_db
from auth import require_admin
from errors import NotFound, PersistenceFailure, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["admin"]
)


def _get_profile(db: Session, user_id: str) -> models.Profile:
    profile = db.query(models.Profile).filter(models.Profile.user_id == user_id).first()
    if not profile:
        raise NotFound("User not found")
    return profile


# GET /admin/users → profiles, newest first; rejected ones only on request
@router.get("/users", response_model=List[schemas.ProfileOut])
def list_users(
    include_rejected: bool = False,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin)
):
    q = db.query(models.Profile)
    if not include_rejected:
        q = q.filter(models.Profile.status != models.STATUS_REJECTED)
    return q.order_by(models.Profile.created_at.desc()).all()


# POST /admin/users/{user_id}/approve
@router.post("/users/{user_id}/approve", response_model=schemas.ProfileOut)
def approve_user(
    user_id: str,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin)
):
    profile = _get_profile(db, user_id)
    policy.ensure(policy.can_manage_profiles(admin))
    policy.transition_profile(profile, models.STATUS_APPROVED)
    commit_or_fail(db, "approve user")
    db.refresh(profile)
    logger.info("Admin %s approved user %s", admin.id, user_id)
    return profile


# POST /admin/users/{user_id}/reject
@router.post("/users/{user_id}/reject", response_model=schemas.ProfileOut)
def reject_user(
    user_id: str,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin)
):
    profile = _get_profile(db, user_id)
    policy.ensure(policy.can_manage_profiles(admin))
    policy.transition_profile(profile, models.STATUS_REJECTED)
    commit_or_fail(db, "reject user")
    db.refresh(profile)
    logger.info("Admin %s rejected user %s", admin.id, user_id)
    return profile


# DELETE /admin/users/{user_id} → remove the identity with its profile, roles, codes and conversations
@router.delete("/users/{user_id}", status_code=204)
def delete_user(
    user_id: str,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin)
):
    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        raise NotFound("User not found")
    policy.ensure(policy.can_manage_profiles(admin))
    db.delete(user)
    commit_or_fail(db, "delete user")
    logger.info("Admin %s deleted user %s", admin.id, user_id)
    return


# ─── Roles ────────────────────────────────────────────────────────────────────
@router.get("/users/{user_id}/roles", response_model=List[str])
def list_roles(
    user_id: str,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin)
):
    policy.ensure(policy.can_read_roles(admin, user_id))
    rows = db.query(models.UserRole).filter(models.UserRole.user_id == user_id).all()
    return sorted(r.role for r in rows)


@router.post("/users/{user_id}/roles", response_model=List[str], status_code=201)
def grant_role(
    user_id: str,
    body: schemas.RoleGrant,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin)
):
    policy.ensure(policy.can_manage_roles(admin))
    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        raise NotFound("User not found")
    if body.role not in user.role_names:
        user.roles.append(models.UserRole(role=body.role))
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ValidationError("Role already assigned")
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Failed to grant %s to user %s", body.role, user_id)
            raise PersistenceFailure("Failed to grant role")
        logger.info("Admin %s granted %s to user %s", admin.id, body.role, user_id)
    db.refresh(user)
    return sorted(user.role_names)


@router.delete("/users/{user_id}/roles/{role}", status_code=204)
def revoke_role(
    user_id: str,
    role: str,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin)
):
    policy.ensure(policy.can_manage_roles(admin))
    row = (
        db.query(models.UserRole)
          .filter(models.UserRole.user_id == user_id, models.UserRole.role == role)
          .first()
    )
    if not row:
        raise NotFound("Role not found")
    db.delete(row)
    commit_or_fail(db, "revoke role")
    logger.info("Admin %s revoked %s from user %s", admin.id, role, user_id)
    return


# ─── Reset codes ──────────────────────────────────────────────────────────────
@router.get("/reset-codes", response_model=List[schemas.ResetCodeOut])
def list_reset_codes(
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin)
):
    policy.ensure(policy.can_manage_reset_codes(admin))
    return (
        db.query(models.ResetCode)
          .order_by(models.ResetCode.created_at.desc())
          .all()
    )


@router.delete("/reset-codes/{code_id}", status_code=204)
def delete_reset_code(
    code_id: str,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin)
):
    policy.ensure(policy.can_manage_reset_codes(admin))
    row = db.query(models.ResetCode).filter(models.ResetCode.id == code_id).first()
    if not row:
        raise NotFound("Reset code not found")
    db.delete(row)
    commit_or_fail(db, "delete reset code")
    return
