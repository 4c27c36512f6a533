"""CRUD operations for contacts, groups, events and settings.

This module contains database interaction logic isolated from FastAPI
route handlers. Membership rows are written through
:mod:`kontakthub.memberships`.
"""

import logging
from datetime import date
from typing import Any

from pydantic.alias_generators import to_snake
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from . import memberships, models, schemas
from .database import atomic
from .errors import ConstraintViolation, NotFound, ValidationError
from .memberships import (
    CONTACT_GROUPS,
    EVENT_CONTACTS,
    EVENT_GROUPS,
    GROUP_CONTACTS,
)

logger = logging.getLogger(__name__)

CONTACT_COLUMNS = (
    "first_name",
    "last_name",
    "gender",
    "email",
    "phone",
    "mobile",
    "company",
    "notes",
)
ADDRESS_COLUMNS = ("street", "city", "zip", "country")

CONTACT_SORT_FIELDS = (
    "first_name",
    "last_name",
    "email",
    "company",
    "created_at",
    "updated_at",
)
GROUP_SORT_FIELDS = ("name", "created_at", "updated_at")
EVENT_SORT_FIELDS = ("name", "event_date", "created_at", "updated_at")

DEFAULT_SETTINGS: dict[str, Any] = {
    "theme": "light",
    "accentColor": "blue",
    "defaultEmail": "",
    "animationsEnabled": True,
    "storageMode": "server",
}


def _order_by(model, sort_by: str | None, sort_order: str, allowed, default: str):
    field = to_snake(sort_by) if sort_by else default
    if field not in allowed:
        field = default
    column = getattr(model, field)
    ordered = column.desc() if sort_order == "desc" else column.asc()
    return ordered, model.id.asc()


# Contacts


def contact_fields(contact: models.Contact) -> schemas.ContactFields:
    """Build the wire representation of a contact's fields."""
    data = dict(contact.custom_fields or {})
    data.update({name: getattr(contact, name) or "" for name in CONTACT_COLUMNS})
    data["address"] = {name: getattr(contact, name) or "" for name in ADDRESS_COLUMNS}
    return schemas.ContactFields.model_validate(data)


def contact_to_schema(db: Session, contact: models.Contact) -> schemas.ContactOut:
    """
    Convert a contact row into its API representation.

    Args:
        db (Session): Database session.
        contact (Contact): Contact instance.

    Returns:
        ContactOut: Contact with fields, group ids and tags.
    """
    return schemas.ContactOut(
        id=contact.id,
        created_at=contact.created_at,
        updated_at=contact.updated_at,
        fields=contact_fields(contact),
        group_ids=memberships.list_children(db, CONTACT_GROUPS, contact.id),
        tags=list(contact.tags or []),
        archived=bool(contact.archived),
    )


def _contacts_where(
    db: Session, *conditions, exclude_id: str | None = None
) -> list[models.Contact]:
    stmt = select(models.Contact).where(*conditions)
    if exclude_id is not None:
        stmt = stmt.where(models.Contact.id != exclude_id)
    stmt = stmt.order_by(models.Contact.created_at, models.Contact.id)
    return list(db.scalars(stmt).all())


def find_contacts_by_name(
    db: Session, first_name: str, last_name: str, exclude_id: str | None = None
) -> list[models.Contact]:
    """
    Find contacts whose first and last name match, ignoring case.

    Args:
        db (Session): Database session.
        first_name (str): First name to match.
        last_name (str): Last name to match.
        exclude_id (str | None): Contact to leave out of the result.

    Returns:
        list[Contact]: Matches in creation order.
    """
    first, last = (first_name or "").lower(), (last_name or "").lower()
    rows = _contacts_where(
        db,
        func.lower(func.coalesce(models.Contact.first_name, "")) == first,
        func.lower(func.coalesce(models.Contact.last_name, "")) == last,
        exclude_id=exclude_id,
    )
    return [
        c
        for c in rows
        if (c.first_name or "").lower() == first and (c.last_name or "").lower() == last
    ]


def find_contacts_by_email(
    db: Session, email: str, exclude_id: str | None = None
) -> list[models.Contact]:
    """
    Find contacts holding an email address, ignoring case.

    An empty address never matches.

    Args:
        db (Session): Database session.
        email (str): Address to match.
        exclude_id (str | None): Contact to leave out of the result.

    Returns:
        list[Contact]: Matches in creation order.
    """
    if not email:
        return []
    needle = email.lower()
    rows = _contacts_where(
        db, func.lower(models.Contact.email) == needle, exclude_id=exclude_id
    )
    return [c for c in rows if (c.email or "").lower() == needle]


def check_contact_unique(
    db: Session,
    first_name: str,
    last_name: str,
    email: str,
    exclude_id: str | None = None,
) -> None:
    """
    Enforce one contact per name pair and per email address.

    Raises:
        ConstraintViolation: If another contact already uses the name
            pair or the email address.
    """
    if find_contacts_by_name(db, first_name, last_name, exclude_id):
        name = " ".join(part for part in (first_name, last_name) if part)
        raise ConstraintViolation(
            f'Contact "{name}" already exists',
            {"firstName": first_name, "lastName": last_name},
        )
    if email and find_contacts_by_email(db, email, exclude_id):
        raise ConstraintViolation(
            f'Email address "{email}" is already in use', {"email": email}
        )


def _assign_fields(contact: models.Contact, fields: schemas.ContactFields) -> None:
    for name in CONTACT_COLUMNS:
        setattr(contact, name, getattr(fields, name))
    for name in ADDRESS_COLUMNS:
        setattr(contact, name, getattr(fields.address, name))
    contact.custom_fields = fields.custom_fields


def apply_field_patch(
    contact: models.Contact, patch: schemas.ContactFieldsPatch
) -> None:
    """
    Copy the provided values of a field patch onto a contact.

    Omitted (``None``) values leave the stored value untouched; custom
    fields are merged into the existing bag.

    Args:
        contact (Contact): Contact to modify.
        patch (ContactFieldsPatch): Values to apply.
    """
    for name in CONTACT_COLUMNS:
        value = getattr(patch, name)
        if value is not None:
            setattr(contact, name, value)
    if patch.address is not None:
        for name in ADDRESS_COLUMNS:
            value = getattr(patch.address, name)
            if value is not None:
                setattr(contact, name, value)
    if patch.custom_fields:
        contact.custom_fields = {**(contact.custom_fields or {}), **patch.custom_fields}


def create_contact(db: Session, contact_in: schemas.ContactCreate) -> models.Contact:
    """
    Create a new contact.

    Args:
        db (Session): Database session.
        contact_in (ContactCreate): Contact data.

    Raises:
        ConstraintViolation: If the id, the name pair or the email is
            already taken.
        NotFound: If one of the requested groups does not exist.

    Returns:
        Contact: Newly created contact.
    """
    fields = contact_in.fields
    with atomic(db):
        if contact_in.id and db.get(models.Contact, contact_in.id) is not None:
            raise ConstraintViolation(
                "Contact already exists", {"id": contact_in.id}
            )
        check_contact_unique(db, fields.first_name, fields.last_name, fields.email)

        now = models.utcnow()
        contact = models.Contact(
            id=contact_in.id or models.new_id(),
            tags=list(contact_in.tags),
            archived=contact_in.archived,
            created_at=now,
            updated_at=now,
        )
        _assign_fields(contact, fields)
        db.add(contact)
        db.flush()

        if contact_in.group_ids:
            memberships.replace_memberships(
                db, CONTACT_GROUPS, contact.id, contact_in.group_ids
            )

    db.refresh(contact)
    logger.info("Created contact %s (%s)", contact.id, contact.display_name)
    return contact


def get_contact(db: Session, contact_id: str) -> models.Contact | None:
    """
    Retrieve a single contact.

    Args:
        db (Session): Database session.
        contact_id (str): Contact identifier.

    Returns:
        Contact | None: Contact if found, otherwise ``None``.
    """
    return db.get(models.Contact, contact_id)


def get_contacts(
    db: Session,
    search: str | None = None,
    archived: bool | None = None,
    sort_by: str | None = None,
    sort_order: str = "asc",
) -> list[models.Contact]:
    """
    Retrieve contacts, optionally filtered and sorted.

    Args:
        db (Session): Database session.
        search (str | None): Case-insensitive substring matched against
            names, email, phone numbers, company and notes.
        archived (bool | None): Only archived (``True``) or only active
            (``False``) contacts; ``None`` returns both.
        sort_by (str | None): Column to sort by, defaults to last name.
        sort_order (str): ``asc`` or ``desc``.

    Returns:
        list[Contact]: Matching contacts.
    """
    stmt = select(models.Contact)
    if archived is not None:
        stmt = stmt.where(models.Contact.archived == archived)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(
            or_(
                models.Contact.first_name.ilike(pattern),
                models.Contact.last_name.ilike(pattern),
                models.Contact.email.ilike(pattern),
                models.Contact.phone.ilike(pattern),
                models.Contact.mobile.ilike(pattern),
                models.Contact.company.ilike(pattern),
                models.Contact.notes.ilike(pattern),
            )
        )
    stmt = stmt.order_by(
        *_order_by(models.Contact, sort_by, sort_order, CONTACT_SORT_FIELDS, "last_name")
    )
    return list(db.scalars(stmt).all())


def update_contact(
    db: Session, contact: models.Contact, changes: schemas.ContactUpdate
) -> models.Contact:
    """
    Update a contact with the provided values.

    Args:
        db (Session): Database session.
        contact (Contact): Contact instance.
        changes (ContactUpdate): Fields to update; a given ``groupIds``
            list replaces all group memberships.

    Raises:
        ValidationError: If the update would leave the contact nameless.
        ConstraintViolation: If the new name pair or email is taken.
        NotFound: If one of the requested groups does not exist.

    Returns:
        Contact: Updated contact.
    """
    with atomic(db):
        if changes.fields is not None:
            apply_field_patch(contact, changes.fields)
        if not (contact.first_name or "").strip() and not (contact.last_name or "").strip():
            raise ValidationError(
                "First or last name is required",
                {"fields.firstName": "First or last name is required"},
            )
        check_contact_unique(
            db, contact.first_name, contact.last_name, contact.email, contact.id
        )
        if changes.tags is not None:
            contact.tags = list(changes.tags)
        if changes.archived is not None:
            contact.archived = changes.archived
        contact.updated_at = models.utcnow()
        db.flush()

        if changes.group_ids is not None:
            memberships.replace_memberships(
                db, CONTACT_GROUPS, contact.id, changes.group_ids
            )

    db.refresh(contact)
    return contact


def delete_contact(db: Session, contact_id: str) -> None:
    """
    Delete a contact and all of its group and event memberships.

    Args:
        db (Session): Database session.
        contact_id (str): Contact identifier.

    Raises:
        NotFound: If the contact does not exist.
    """
    memberships.delete_parent(db, models.Contact, contact_id)


# Groups


def group_to_schema(db: Session, group: models.Group) -> schemas.GroupOut:
    """Convert a group row into its API representation."""
    return schemas.GroupOut(
        id=group.id,
        name=group.name,
        description=group.description or "",
        color=group.color or "blue",
        contact_ids=memberships.list_children(db, GROUP_CONTACTS, group.id),
        created_at=group.created_at,
        updated_at=group.updated_at,
    )


def create_group(db: Session, group_in: schemas.GroupCreate) -> models.Group:
    """
    Create a new group.

    Args:
        db (Session): Database session.
        group_in (GroupCreate): Group data.

    Raises:
        ConstraintViolation: If the id is already taken.
        NotFound: If one of the listed contacts does not exist.

    Returns:
        Group: Newly created group.
    """
    with atomic(db):
        if group_in.id and db.get(models.Group, group_in.id) is not None:
            raise ConstraintViolation("Group already exists", {"id": group_in.id})
        now = models.utcnow()
        group = models.Group(
            id=group_in.id or models.new_id(),
            name=group_in.name,
            description=group_in.description,
            color=group_in.color,
            created_at=now,
            updated_at=now,
        )
        db.add(group)
        db.flush()
        if group_in.contact_ids:
            memberships.replace_memberships(
                db, GROUP_CONTACTS, group.id, group_in.contact_ids
            )

    db.refresh(group)
    logger.info("Created group %s", group.id)
    return group


def get_group(db: Session, group_id: str) -> models.Group | None:
    """Retrieve a single group or ``None``."""
    return db.get(models.Group, group_id)


def get_groups(
    db: Session, sort_by: str | None = None, sort_order: str = "asc"
) -> list[models.Group]:
    """Retrieve all groups, sorted by name unless told otherwise."""
    stmt = select(models.Group).order_by(
        *_order_by(models.Group, sort_by, sort_order, GROUP_SORT_FIELDS, "name")
    )
    return list(db.scalars(stmt).all())


def update_group(
    db: Session, group: models.Group, changes: schemas.GroupUpdate
) -> models.Group:
    """
    Update a group; a given ``contactIds`` list replaces all members.

    Raises:
        NotFound: If one of the listed contacts does not exist.
    """
    with atomic(db):
        if changes.name is not None:
            group.name = changes.name
        if changes.description is not None:
            group.description = changes.description
        if changes.color is not None:
            group.color = changes.color
        group.updated_at = models.utcnow()
        db.flush()
        if changes.contact_ids is not None:
            memberships.replace_memberships(
                db, GROUP_CONTACTS, group.id, changes.contact_ids
            )

    db.refresh(group)
    return group


def delete_group(db: Session, group_id: str) -> None:
    """Delete a group, its memberships and its event invitations."""
    memberships.delete_parent(db, models.Group, group_id)


# Events


def event_to_schema(db: Session, event: models.Event) -> schemas.EventOut:
    """Convert an event row into its API representation."""
    return schemas.EventOut(
        id=event.id,
        name=event.name,
        description=event.description or "",
        event_date=event.event_date or "",
        location=event.location or "",
        attendees=schemas.EventAttendees(
            group_ids=memberships.list_children(db, EVENT_GROUPS, event.id),
            contact_ids=memberships.list_children(db, EVENT_CONTACTS, event.id),
        ),
        created_at=event.created_at,
        updated_at=event.updated_at,
    )


def create_event(db: Session, event_in: schemas.EventCreate) -> models.Event:
    """
    Create a new event with its initial invitations.

    Args:
        db (Session): Database session.
        event_in (EventCreate): Event data.

    Raises:
        ConstraintViolation: If the id is already taken.
        NotFound: If an invited group or contact does not exist.

    Returns:
        Event: Newly created event.
    """
    with atomic(db):
        if event_in.id and db.get(models.Event, event_in.id) is not None:
            raise ConstraintViolation("Event already exists", {"id": event_in.id})
        now = models.utcnow()
        event = models.Event(
            id=event_in.id or models.new_id(),
            name=event_in.name,
            description=event_in.description,
            event_date=event_in.event_date,
            location=event_in.location,
            created_at=now,
            updated_at=now,
        )
        db.add(event)
        db.flush()
        if event_in.attendees.group_ids:
            memberships.replace_memberships(
                db, EVENT_GROUPS, event.id, event_in.attendees.group_ids
            )
        if event_in.attendees.contact_ids:
            memberships.replace_memberships(
                db, EVENT_CONTACTS, event.id, event_in.attendees.contact_ids
            )

    db.refresh(event)
    logger.info("Created event %s", event.id)
    return event


def get_event(db: Session, event_id: str) -> models.Event | None:
    """Retrieve a single event or ``None``."""
    return db.get(models.Event, event_id)


def get_events(
    db: Session,
    when: str | None = None,
    sort_by: str | None = None,
    sort_order: str = "asc",
    today: date | None = None,
) -> list[models.Event]:
    """
    Retrieve events, optionally restricted to past, future or today.

    Events without a date are only returned when no time filter is set.

    Args:
        db (Session): Database session.
        when (str | None): ``past``, ``future`` or ``today``.
        sort_by (str | None): Column to sort by, defaults to event date.
        sort_order (str): ``asc`` or ``desc``.
        today (date | None): Reference day, defaults to the current date.

    Returns:
        list[Event]: Matching events.
    """
    today_str = (today or date.today()).isoformat()
    stmt = select(models.Event)
    if when in ("past", "future", "today"):
        stmt = stmt.where(models.Event.event_date != "")
    if when == "past":
        stmt = stmt.where(models.Event.event_date < today_str)
    elif when == "future":
        stmt = stmt.where(models.Event.event_date >= today_str)
    elif when == "today":
        stmt = stmt.where(models.Event.event_date == today_str)
    stmt = stmt.order_by(
        *_order_by(models.Event, sort_by, sort_order, EVENT_SORT_FIELDS, "event_date")
    )
    return list(db.scalars(stmt).all())


def update_event(
    db: Session, event: models.Event, changes: schemas.EventUpdate
) -> models.Event:
    """
    Update an event; each given attendee list replaces the stored one.

    Raises:
        NotFound: If an invited group or contact does not exist.
    """
    with atomic(db):
        for name in ("name", "description", "event_date", "location"):
            value = getattr(changes, name)
            if value is not None:
                setattr(event, name, value)
        event.updated_at = models.utcnow()
        db.flush()
        attendees = changes.attendees
        if attendees is not None and attendees.group_ids is not None:
            memberships.replace_memberships(
                db, EVENT_GROUPS, event.id, attendees.group_ids
            )
        if attendees is not None and attendees.contact_ids is not None:
            memberships.replace_memberships(
                db, EVENT_CONTACTS, event.id, attendees.contact_ids
            )

    db.refresh(event)
    return event


def delete_event(db: Session, event_id: str) -> None:
    """Delete an event and all of its invitations."""
    memberships.delete_parent(db, models.Event, event_id)


# Settings


def read_settings(db: Session) -> dict[str, Any]:
    """
    Return all settings, stored values merged over the defaults.

    Args:
        db (Session): Database session.

    Returns:
        dict: Setting name to value.
    """
    merged = dict(DEFAULT_SETTINGS)
    for row in db.scalars(select(models.Setting)).all():
        merged[row.key] = row.value
    return merged


def read_setting(db: Session, key: str) -> Any:
    """
    Return a single setting.

    Raises:
        NotFound: If the key is neither stored nor a known default.
    """
    row = db.get(models.Setting, key)
    if row is not None:
        return row.value
    if key in DEFAULT_SETTINGS:
        return DEFAULT_SETTINGS[key]
    raise NotFound("Setting not found", {"key": key})


def write_settings(db: Session, updates: dict[str, Any]) -> dict[str, Any]:
    """
    Persist setting overrides; keys not in ``updates`` are left alone.

    Args:
        db (Session): Database session.
        updates (dict): Setting name to new value.

    Raises:
        ValidationError: If a key is empty or longer than 100 characters.

    Returns:
        dict: All settings after the write.
    """
    bad = [key for key in updates if not key or len(key) > 100]
    if bad:
        raise ValidationError("Invalid setting key", {"keys": bad})

    with atomic(db):
        now = models.utcnow()
        for key, value in updates.items():
            row = db.get(models.Setting, key)
            if row is None:
                db.add(models.Setting(key=key, value=value, updated_at=now))
            else:
                row.value = value
                row.updated_at = now
    return read_settings(db)
