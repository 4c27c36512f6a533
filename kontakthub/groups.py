"""Group management routes for the KontaktHub API."""

from typing import List, Literal

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from . import crud, exports, memberships, models, schemas
from .database import get_db
from .memberships import GROUP_CONTACTS, require_entity

router = APIRouter(prefix="/groups", tags=["groups"])


@router.post("", response_model=schemas.GroupOut, status_code=201)
def create_group(group_in: schemas.GroupCreate, db: Session = Depends(get_db)):
    """
    Create a new group, optionally with initial members.

    Args:
        group_in (GroupCreate): Group input data.
        db (Session): Database session.

    Returns:
        GroupOut: Created group.
    """
    group = crud.create_group(db, group_in)
    return crud.group_to_schema(db, group)


@router.get("", response_model=List[schemas.GroupOut])
def list_groups(
    sort_by: str | None = Query(None, alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query("asc", alias="sortOrder"),
    db: Session = Depends(get_db),
):
    """Retrieve all groups."""
    groups = crud.get_groups(db, sort_by=sort_by, sort_order=sort_order)
    return [crud.group_to_schema(db, group) for group in groups]


@router.get("/{group_id}", response_model=schemas.GroupOut)
def get_group(group_id: str, db: Session = Depends(get_db)):
    """Retrieve a single group by ID."""
    group = require_entity(db, models.Group, group_id)
    return crud.group_to_schema(db, group)


@router.put("/{group_id}", response_model=schemas.GroupOut)
def update_group(
    group_id: str,
    changes: schemas.GroupUpdate,
    db: Session = Depends(get_db),
):
    """
    Update a group.

    Args:
        group_id (str): Group identifier.
        changes (GroupUpdate): Fields to update; ``contactIds`` replaces
            the member list.
        db (Session): Database session.

    Raises:
        NotFound: If the group or a listed contact does not exist.

    Returns:
        GroupOut: Updated group.
    """
    group = require_entity(db, models.Group, group_id)
    group = crud.update_group(db, group, changes)
    return crud.group_to_schema(db, group)


@router.delete(
    "/{group_id}", status_code=status.HTTP_204_NO_CONTENT, response_class=Response
)
def remove_group(group_id: str, db: Session = Depends(get_db)):
    """Delete a group; its members stay, their membership is dropped."""
    crud.delete_group(db, group_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{group_id}/contacts/{contact_id}", response_model=schemas.GroupOut)
def add_contact(group_id: str, contact_id: str, db: Session = Depends(get_db)):
    """
    Add a contact to a group.

    Adding a contact that is already a member changes nothing.

    Raises:
        NotFound: If the group or the contact does not exist.
    """
    group = memberships.add_membership(db, GROUP_CONTACTS, group_id, contact_id)
    db.refresh(group)
    return crud.group_to_schema(db, group)


@router.delete("/{group_id}/contacts/{contact_id}", response_model=schemas.GroupOut)
def remove_contact(group_id: str, contact_id: str, db: Session = Depends(get_db)):
    """Remove a contact from a group."""
    group = memberships.remove_membership(db, GROUP_CONTACTS, group_id, contact_id)
    db.refresh(group)
    return crud.group_to_schema(db, group)


@router.get("/{group_id}/export")
def export_group(group_id: str, db: Session = Depends(get_db)):
    """
    Download the group members as a mail merge CSV.

    Raises:
        NotFound: If the group does not exist.
        ValidationError: If the group has no members.
    """
    group = require_entity(db, models.Group, group_id)
    contacts = [
        contact
        for contact in (
            db.get(models.Contact, cid)
            for cid in memberships.list_children(db, GROUP_CONTACTS, group.id)
        )
        if contact is not None
    ]
    return Response(
        content=exports.mail_merge_csv(contacts),
        media_type="text/csv; charset=utf-8",
        headers={
            "Content-Disposition": (
                f'attachment; filename="{exports.export_filename(group.name)}"'
            )
        },
    )
