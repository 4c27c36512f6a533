"""Contact management routes for the KontaktHub API."""

from typing import List, Literal

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from . import crud, models, schemas
from .database import get_db
from .memberships import require_entity

router = APIRouter(prefix="/contacts", tags=["contacts"])


@router.post("", response_model=schemas.ContactOut, status_code=201)
def create_contact(contact_in: schemas.ContactCreate, db: Session = Depends(get_db)):
    """
    Create a new contact.

    Args:
        contact_in (ContactCreate): Contact input data.
        db (Session): Database session.

    Returns:
        ContactOut: Created contact.
    """
    contact = crud.create_contact(db, contact_in)
    return crud.contact_to_schema(db, contact)


@router.get("", response_model=List[schemas.ContactOut])
def list_contacts(
    search: str | None = Query(None),
    archived: bool | None = Query(None),
    sort_by: str | None = Query(None, alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query("asc", alias="sortOrder"),
    db: Session = Depends(get_db),
):
    """
    Retrieve contacts.

    Supports a free text search over names, email, phone numbers,
    company and notes.

    Args:
        search (str | None): Optional search text.
        archived (bool | None): Restrict to archived or active contacts.
        sort_by (str | None): Sort column, e.g. ``lastName``.
        sort_order (str): ``asc`` or ``desc``.
        db (Session): Database session.

    Returns:
        list[ContactOut]: List of contacts.
    """
    contacts = crud.get_contacts(
        db, search=search, archived=archived, sort_by=sort_by, sort_order=sort_order
    )
    return [crud.contact_to_schema(db, contact) for contact in contacts]


@router.get("/{contact_id}", response_model=schemas.ContactOut)
def get_contact(contact_id: str, db: Session = Depends(get_db)):
    """
    Retrieve a single contact by ID.

    Raises:
        NotFound: If the contact does not exist.
    """
    contact = require_entity(db, models.Contact, contact_id)
    return crud.contact_to_schema(db, contact)


@router.put("/{contact_id}", response_model=schemas.ContactOut)
def update_contact(
    contact_id: str,
    changes: schemas.ContactUpdate,
    db: Session = Depends(get_db),
):
    """
    Update an existing contact.

    Only values present in the request are changed; ``groupIds`` replaces
    the whole membership list.

    Args:
        contact_id (str): Contact identifier.
        changes (ContactUpdate): Fields to update.
        db (Session): Database session.

    Raises:
        NotFound: If the contact or a listed group does not exist.

    Returns:
        ContactOut: Updated contact.
    """
    contact = require_entity(db, models.Contact, contact_id)
    contact = crud.update_contact(db, contact, changes)
    return crud.contact_to_schema(db, contact)


@router.delete(
    "/{contact_id}", status_code=status.HTTP_204_NO_CONTENT, response_class=Response
)
def remove_contact(contact_id: str, db: Session = Depends(get_db)):
    """
    Delete a contact together with its group and event memberships.

    Raises:
        NotFound: If the contact does not exist.
    """
    crud.delete_contact(db, contact_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
