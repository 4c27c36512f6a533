"""Pydantic schemas for the KontaktHub API.

Request and response bodies use camelCase on the wire and snake_case in
Python. Contacts accept extra keys, which are kept as custom fields.
"""

import re
from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional, get_args

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from .core import MatchPolicy


Gender = Literal["male", "female", "diverse", ""]

GroupColor = Literal[
    "red",
    "orange",
    "amber",
    "yellow",
    "lime",
    "green",
    "emerald",
    "teal",
    "cyan",
    "sky",
    "blue",
    "indigo",
    "violet",
    "purple",
    "fuchsia",
    "pink",
    "rose",
]
GROUP_COLORS = get_args(GroupColor)

PHONE_RE = re.compile(r"^[\d\s+\-()]+$")


def _normalize_gender(value: Any) -> Any:
    if value is None or value == "unset":
        return ""
    return value


def _normalize_email(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return value


def _check_phone(value: Optional[str]) -> Optional[str]:
    if value and not PHONE_RE.match(value):
        raise ValueError("Invalid phone number")
    return value


def _check_event_date(value: Optional[str]) -> Optional[str]:
    if not value:
        return value
    try:
        return date.fromisoformat(value).isoformat()
    except ValueError:
        raise ValueError("Invalid date, expected YYYY-MM-DD")


class CamelModel(BaseModel):
    """Base model that uses camelCase keys on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Address(CamelModel):
    """Postal address of a contact."""

    street: str = ""
    city: str = ""
    zip: str = ""
    country: str = ""


class AddressPatch(CamelModel):
    """Address fields to change (omitted keys stay untouched)."""

    street: Optional[str] = None
    city: Optional[str] = None
    zip: Optional[str] = None
    country: Optional[str] = None


class ContactFields(CamelModel):
    """Known contact fields plus an open bag of custom fields.

    Any key that is not a known field is kept as a custom field and is
    available through :attr:`custom_fields`.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    first_name: str = ""
    last_name: str = ""
    gender: Gender = ""
    email: EmailStr | Literal[""] = ""
    phone: str = ""
    mobile: str = ""
    company: str = ""
    address: Address = Field(default_factory=Address)
    notes: str = ""

    @field_validator("gender", mode="before")
    @classmethod
    def normalize_gender(cls, value: Any) -> Any:
        return _normalize_gender(value)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: Any) -> Any:
        return _normalize_email(value)

    @field_validator("phone", "mobile")
    @classmethod
    def check_phone(cls, value: str) -> str:
        return _check_phone(value)

    @property
    def custom_fields(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})


class ContactFieldsPatch(CamelModel):
    """Partial contact fields; unknown keys are merged into custom fields."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    gender: Optional[Gender] = None
    email: Optional[EmailStr | Literal[""]] = None
    phone: Optional[str] = None
    mobile: Optional[str] = None
    company: Optional[str] = None
    address: Optional[AddressPatch] = None
    notes: Optional[str] = None

    @field_validator("gender", mode="before")
    @classmethod
    def normalize_gender(cls, value: Any) -> Any:
        return "" if value == "unset" else value

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("phone", "mobile")
    @classmethod
    def check_phone(cls, value: Optional[str]) -> Optional[str]:
        return _check_phone(value)

    @property
    def custom_fields(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})


class ContactCreate(CamelModel):
    """Schema for creating new contact."""

    id: Optional[str] = None
    fields: ContactFields = Field(default_factory=ContactFields)
    group_ids: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    archived: bool = False

    @model_validator(mode="after")
    def require_name(self):
        if not self.fields.first_name.strip() and not self.fields.last_name.strip():
            raise ValueError("First or last name is required")
        return self


class ContactUpdate(CamelModel):
    """Schema for updating contact (all fields optional)."""

    fields: Optional[ContactFieldsPatch] = None
    group_ids: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    archived: Optional[bool] = None


class ContactOut(CamelModel):
    """Schema for returning a contact with its group memberships."""

    id: str
    created_at: datetime
    updated_at: datetime
    fields: ContactFields
    group_ids: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    archived: bool = False


def _check_group_name(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = value.strip()
    if not value:
        raise ValueError("Group name is required")
    if len(value) > 100:
        raise ValueError("Group name is too long (max. 100 characters)")
    return value


class GroupCreate(CamelModel):
    """Schema for creating a group."""

    id: Optional[str] = None
    name: str
    description: str = ""
    color: GroupColor = "blue"
    contact_ids: List[str] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def check_name(cls, value: Optional[str]) -> Optional[str]:
        return _check_group_name(value)


class GroupUpdate(CamelModel):
    """Schema for updating a group (all fields optional)."""

    name: Optional[str] = None
    description: Optional[str] = None
    color: Optional[GroupColor] = None
    contact_ids: Optional[List[str]] = None

    @field_validator("name")
    @classmethod
    def check_name(cls, value: Optional[str]) -> Optional[str]:
        return _check_group_name(value)


class GroupOut(CamelModel):
    """Schema for returning a group with its members."""

    id: str
    name: str
    description: str = ""
    color: str = "blue"
    contact_ids: List[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


def _check_event_name(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = value.strip()
    if not value:
        raise ValueError("Event name is required")
    return value


class EventAttendees(CamelModel):
    """Groups and contacts invited to an event."""

    group_ids: List[str] = Field(default_factory=list)
    contact_ids: List[str] = Field(default_factory=list)


class EventAttendeesPatch(CamelModel):
    """Invitation lists to replace; ``None`` leaves a list untouched."""

    group_ids: Optional[List[str]] = None
    contact_ids: Optional[List[str]] = None


class EventCreate(CamelModel):
    """Schema for creating an event."""

    id: Optional[str] = None
    name: str
    description: str = ""
    event_date: str = ""
    location: str = ""
    attendees: EventAttendees = Field(default_factory=EventAttendees)

    @field_validator("name")
    @classmethod
    def check_name(cls, value: Optional[str]) -> Optional[str]:
        return _check_event_name(value)

    @field_validator("event_date")
    @classmethod
    def check_event_date(cls, value: Optional[str]) -> Optional[str]:
        return _check_event_date(value)


class EventUpdate(CamelModel):
    """Schema for updating an event (all fields optional)."""

    name: Optional[str] = None
    description: Optional[str] = None
    event_date: Optional[str] = None
    location: Optional[str] = None
    attendees: Optional[EventAttendeesPatch] = None

    @field_validator("name")
    @classmethod
    def check_name(cls, value: Optional[str]) -> Optional[str]:
        return _check_event_name(value)

    @field_validator("event_date")
    @classmethod
    def check_event_date(cls, value: Optional[str]) -> Optional[str]:
        return _check_event_date(value)


class EventOut(CamelModel):
    """Schema for returning an event with its invitations."""

    id: str
    name: str
    description: str = ""
    event_date: str = ""
    location: str = ""
    attendees: EventAttendees
    created_at: datetime
    updated_at: datetime


class ImportRequest(CamelModel):
    """Batch of contacts to import with an optional target group."""

    contacts: List[ContactCreate] = Field(min_length=1)
    group_id: Optional[str] = None
    new_group_name: Optional[str] = None
    match_policy: Optional[MatchPolicy] = None

    @field_validator("new_group_name")
    @classmethod
    def check_new_group_name(cls, value: Optional[str]) -> Optional[str]:
        return _check_group_name(value)

    @model_validator(mode="after")
    def one_group_target(self):
        if self.group_id and self.new_group_name:
            raise ValueError("Use either groupId or newGroupName, not both")
        return self


class MergeResolution(CamelModel):
    """Answer to a pending merge proposal."""

    action: Literal["merge", "skip"]
    choices: Dict[str, Literal["existing", "new"]] = Field(default_factory=dict)
    record_index: Optional[int] = None


class FieldConflictOut(CamelModel):
    """One field whose existing and incoming values differ."""

    field: str
    existing: Any = ""
    incoming: Any = ""
    selected: Literal["existing", "new"]


class MergeProposalOut(CamelModel):
    """A duplicate waiting for the user to merge or skip it."""

    record_index: int
    incoming: ContactFields
    primary: ContactOut
    candidate_ids: List[str]
    conflicts: List[FieldConflictOut]


class SkippedRecordOut(CamelModel):
    """An incoming record that was neither inserted nor merged."""

    index: int
    name: str
    reason: Optional[str] = None


class ImportStatusOut(CamelModel):
    """Progress and results of an import session."""

    id: str
    state: Literal["awaiting_decision", "completed"]
    group_id: Optional[str] = None
    group_error: Optional[str] = None
    total: int
    processed: int
    proposal: Optional[MergeProposalOut] = None
    imported_ids: List[str] = Field(default_factory=list)
    created_ids: List[str] = Field(default_factory=list)
    merged_ids: List[str] = Field(default_factory=list)
    skipped: List[SkippedRecordOut] = Field(default_factory=list)


class HealthOut(BaseModel):
    """Liveness report."""

    status: str
    timestamp: datetime
    database: str
    error: Optional[str] = None


class ErrorResponse(BaseModel):
    """Error envelope returned for every failed request."""

    error: str
    message: str
    details: Optional[Dict[str, Any]] = None
