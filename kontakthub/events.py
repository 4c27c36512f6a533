"""Event management routes for the KontaktHub API."""

from typing import List, Literal

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from . import crud, exports, memberships, models, schemas
from .database import get_db
from .memberships import EVENT_CONTACTS, EVENT_GROUPS, require_entity

router = APIRouter(prefix="/events", tags=["events"])


@router.post("", response_model=schemas.EventOut, status_code=201)
def create_event(event_in: schemas.EventCreate, db: Session = Depends(get_db)):
    """
    Create a new event.

    Args:
        event_in (EventCreate): Event input data with invited groups and
            contacts.
        db (Session): Database session.

    Raises:
        NotFound: If an invited group or contact does not exist.

    Returns:
        EventOut: Created event.
    """
    event = crud.create_event(db, event_in)
    return crud.event_to_schema(db, event)


@router.get("", response_model=List[schemas.EventOut])
def list_events(
    when: Literal["past", "future", "today"] | None = Query(None, alias="filter"),
    sort_by: str | None = Query(None, alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query("asc", alias="sortOrder"),
    db: Session = Depends(get_db),
):
    """
    Retrieve events.

    Args:
        when (str | None): ``past``, ``future`` or ``today``.
        sort_by (str | None): Sort column, defaults to the event date.
        sort_order (str): ``asc`` or ``desc``.
        db (Session): Database session.

    Returns:
        list[EventOut]: List of events.
    """
    events = crud.get_events(db, when=when, sort_by=sort_by, sort_order=sort_order)
    return [crud.event_to_schema(db, event) for event in events]


@router.get("/{event_id}", response_model=schemas.EventOut)
def get_event(event_id: str, db: Session = Depends(get_db)):
    """Retrieve a single event by ID."""
    event = require_entity(db, models.Event, event_id)
    return crud.event_to_schema(db, event)


@router.put("/{event_id}", response_model=schemas.EventOut)
def update_event(
    event_id: str,
    changes: schemas.EventUpdate,
    db: Session = Depends(get_db),
):
    """
    Update an event.

    Each attendee list sent in the request replaces the stored one.

    Raises:
        NotFound: If the event or an invited group or contact does not
            exist.
    """
    event = require_entity(db, models.Event, event_id)
    event = crud.update_event(db, event, changes)
    return crud.event_to_schema(db, event)


@router.delete(
    "/{event_id}", status_code=status.HTTP_204_NO_CONTENT, response_class=Response
)
def remove_event(event_id: str, db: Session = Depends(get_db)):
    """Delete an event and its invitations."""
    crud.delete_event(db, event_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{event_id}/groups/{group_id}", response_model=schemas.EventOut)
def invite_group(event_id: str, group_id: str, db: Session = Depends(get_db)):
    """Invite a group to an event."""
    event = memberships.add_membership(db, EVENT_GROUPS, event_id, group_id)
    db.refresh(event)
    return crud.event_to_schema(db, event)


@router.delete("/{event_id}/groups/{group_id}", response_model=schemas.EventOut)
def uninvite_group(event_id: str, group_id: str, db: Session = Depends(get_db)):
    """Withdraw a group invitation."""
    event = memberships.remove_membership(db, EVENT_GROUPS, event_id, group_id)
    db.refresh(event)
    return crud.event_to_schema(db, event)


@router.post("/{event_id}/contacts/{contact_id}", response_model=schemas.EventOut)
def invite_contact(event_id: str, contact_id: str, db: Session = Depends(get_db)):
    """Invite a single contact to an event."""
    event = memberships.add_membership(db, EVENT_CONTACTS, event_id, contact_id)
    db.refresh(event)
    return crud.event_to_schema(db, event)


@router.delete("/{event_id}/contacts/{contact_id}", response_model=schemas.EventOut)
def uninvite_contact(event_id: str, contact_id: str, db: Session = Depends(get_db)):
    """Withdraw a personal invitation."""
    event = memberships.remove_membership(db, EVENT_CONTACTS, event_id, contact_id)
    db.refresh(event)
    return crud.event_to_schema(db, event)


@router.get("/{event_id}/attendees", response_model=List[schemas.ContactOut])
def list_attendees(event_id: str, db: Session = Depends(get_db)):
    """
    List everyone invited to an event.

    Members of invited groups come first, then individually invited
    contacts; nobody is listed twice.

    Raises:
        NotFound: If the event does not exist.
    """
    attendees = memberships.get_attendees(db, event_id)
    return [crud.contact_to_schema(db, contact) for contact in attendees]


@router.get("/{event_id}/export")
def export_event(event_id: str, db: Session = Depends(get_db)):
    """
    Download the attendees as a mail merge CSV.

    Raises:
        NotFound: If the event does not exist.
        ValidationError: If nobody is invited.
    """
    event = require_entity(db, models.Event, event_id)
    content = exports.mail_merge_csv(memberships.get_attendees(db, event.id))
    filename = exports.export_filename(event.name)
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
