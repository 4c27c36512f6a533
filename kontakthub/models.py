"""Database models for the KontaktHub API.

This module defines SQLAlchemy ORM models and the join tables that
link contacts, groups and events.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Table,
    Text,
)

from .database import Base


def utcnow() -> datetime:
    """Current time in UTC."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Generate an opaque entity identifier."""
    return str(uuid.uuid4())


contact_groups = Table(
    "contact_groups",
    Base.metadata,
    Column(
        "contact_id",
        String(64),
        ForeignKey("contacts.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "group_id",
        String(64),
        ForeignKey("groups.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("created_at", DateTime(timezone=True), default=utcnow, nullable=False),
    Index("idx_contact_groups_group", "group_id"),
)
"""Membership of contacts in groups."""


event_groups = Table(
    "event_groups",
    Base.metadata,
    Column(
        "event_id",
        String(64),
        ForeignKey("events.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "group_id",
        String(64),
        ForeignKey("groups.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("created_at", DateTime(timezone=True), default=utcnow, nullable=False),
    Index("idx_event_groups_group", "group_id"),
)
"""Groups invited to an event."""


event_contacts = Table(
    "event_contacts",
    Base.metadata,
    Column(
        "event_id",
        String(64),
        ForeignKey("events.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "contact_id",
        String(64),
        ForeignKey("contacts.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("created_at", DateTime(timezone=True), default=utcnow, nullable=False),
    Index("idx_event_contacts_contact", "contact_id"),
)
"""Contacts individually invited to an event."""


class Contact(Base):
    """
    SQLAlchemy model representing a contact entry.

    Known fields are stored in their own columns; anything else the
    client sends lives in the ``custom_fields`` JSON bag.
    """

    __tablename__ = "contacts"
    __table_args__ = (
        Index("idx_contacts_name", "last_name", "first_name"),
    )

    id = Column(String(64), primary_key=True, default=new_id)
    first_name = Column(String(100), nullable=False, default="")
    last_name = Column(String(100), nullable=False, default="")
    gender = Column(String(20), nullable=False, default="")
    email = Column(String(255), nullable=False, default="", index=True)
    phone = Column(String(50), nullable=False, default="")
    mobile = Column(String(50), nullable=False, default="")
    company = Column(String(255), nullable=False, default="")
    street = Column(String(255), nullable=False, default="")
    city = Column(String(100), nullable=False, default="")
    zip = Column(String(20), nullable=False, default="")
    country = Column(String(100), nullable=False, default="")
    notes = Column(Text, nullable=False, default="")
    tags = Column(JSON, nullable=False, default=list)
    custom_fields = Column(JSON, nullable=False, default=dict)
    archived = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    @property
    def display_name(self) -> str:
        name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return name or "Unnamed"


class Group(Base):
    """
    SQLAlchemy model representing a named group of contacts.
    """

    __tablename__ = "groups"

    id = Column(String(64), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=False, default="")
    color = Column(String(20), nullable=False, default="blue")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Event(Base):
    """
    SQLAlchemy model representing an event.

    Attendees are the members of the invited groups plus the
    individually invited contacts.
    """

    __tablename__ = "events"

    id = Column(String(64), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    event_date = Column(String(10), nullable=False, default="", index=True)
    location = Column(String(255), nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Setting(Base):
    """
    A single overridden application setting.

    Only keys that were written are stored; the rest fall back to the
    built-in defaults.
    """

    __tablename__ = "settings"

    key = Column(String(100), primary_key=True)
    value = Column(JSON, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
