# policy.py
"""Row-level authorization rules.

Every router asks these functions before it reads or writes a protected row.
``actor`` is the calling ``models.User`` (with profile and roles) or ``None``
for anonymous callers. ``can_*`` answer the question; ``ensure_*`` raise
``AuthorizationDenied`` when the answer is no.
"""

import models
from errors import AuthorizationDenied, InvalidStatusTransition


def is_admin(actor) -> bool:
    return actor is not None and actor.is_admin


def is_approved(actor) -> bool:
    return actor is not None and actor.status == models.STATUS_APPROVED


def _owns(actor, owner_id) -> bool:
    return actor is not None and owner_id is not None and owner_id == actor.id


# ─── Content items ────────────────────────────────────────────────────────────
def can_read_content(actor, item) -> bool:
    # Public knowledge base
    return True


def can_insert_content(actor) -> bool:
    return is_approved(actor) or is_admin(actor)


def can_modify_content(actor, item) -> bool:
    """Update and delete share one rule: owner or admin."""
    return _owns(actor, item.user_id) or is_admin(actor)


# ─── Profiles ─────────────────────────────────────────────────────────────────
def can_read_profile(actor, profile) -> bool:
    return _owns(actor, profile.user_id) or is_admin(actor)


def can_manage_profiles(actor) -> bool:
    return is_admin(actor)


# ─── Roles ────────────────────────────────────────────────────────────────────
def can_read_roles(actor, user_id) -> bool:
    return _owns(actor, user_id) or is_admin(actor)


def can_manage_roles(actor) -> bool:
    return is_admin(actor)


# ─── Reset codes ──────────────────────────────────────────────────────────────
def can_manage_reset_codes(actor) -> bool:
    return is_admin(actor)


# ─── Conversations / messages ────────────────────────────────────────────────
def can_access_conversation(actor, conversation) -> bool:
    # Admins get no override here; the log is private to its owner
    return _owns(actor, conversation.user_id)


def can_persist_conversations(actor) -> bool:
    return is_approved(actor) or is_admin(actor)


# ─── Guards ───────────────────────────────────────────────────────────────────
def ensure(allowed: bool):
    if not allowed:
        raise AuthorizationDenied()


def ensure_can_insert_content(actor):
    ensure(can_insert_content(actor))


def ensure_can_modify_content(actor, item):
    ensure(can_modify_content(actor, item))


def ensure_admin(actor):
    ensure(is_admin(actor))


# ─── Approval state machine ───────────────────────────────────────────────────
ALLOWED_TRANSITIONS = {
    models.STATUS_PENDING: {models.STATUS_APPROVED, models.STATUS_REJECTED},
    models.STATUS_APPROVED: set(),
    models.STATUS_REJECTED: set(),
}


def transition_profile(profile, new_status: str):
    """Move a profile to ``new_status``; only pending profiles may change."""
    if new_status not in ALLOWED_TRANSITIONS.get(profile.status, set()):
        raise InvalidStatusTransition(
            f"Cannot change status from {profile.status} to {new_status}"
        )
    profile.status = new_status
    return profile
