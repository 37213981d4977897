from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from feedhub.auth.deps import get_authenticated_user_sub
from feedhub.models import CollaboratorAddReq, CollaboratorRoleReq
from feedhub.services.audit import audit_event
from feedhub.services.collaborators import (
    add_collaborator,
    list_collaborators,
    remove_collaborator,
    update_collaborator_role,
)

router = APIRouter(prefix="/v1/feeds/{feed_id}/collaborators", tags=["collaborators"])


@router.get("")
def get_feed_collaborators(feed_id: str, user: str = Depends(get_authenticated_user_sub)):
    return {"feed_id": feed_id, "collaborators": list_collaborators(user, feed_id)}


@router.post("")
def add_feed_collaborator(
    feed_id: str,
    body: CollaboratorAddReq,
    req: Request = None,
    user: str = Depends(get_authenticated_user_sub),
):
    collaborator_id = add_collaborator(user, feed_id, body.user_id, body.role)
    audit_event(
        "collaborator_added",
        user,
        req,
        outcome="success",
        feed_id=feed_id,
        collaborator=body.user_id,
        role=body.role,
    )
    return {"ok": True, "collaborator_id": collaborator_id}


@router.patch("/{user_id}")
def update_feed_collaborator(
    feed_id: str,
    user_id: str,
    body: CollaboratorRoleReq,
    req: Request = None,
    user: str = Depends(get_authenticated_user_sub),
):
    collaborator_id = update_collaborator_role(user, feed_id, user_id, body.role)
    audit_event(
        "collaborator_role_updated",
        user,
        req,
        outcome="success",
        feed_id=feed_id,
        collaborator=user_id,
        role=body.role,
    )
    return {"ok": True, "collaborator_id": collaborator_id}


@router.delete("/{user_id}")
def remove_feed_collaborator(
    feed_id: str,
    user_id: str,
    req: Request = None,
    user: str = Depends(get_authenticated_user_sub),
):
    collaborator_id = remove_collaborator(user, feed_id, user_id)
    audit_event("collaborator_removed", user, req, outcome="success", feed_id=feed_id, collaborator=user_id)
    return {"ok": True, "collaborator_id": collaborator_id}
