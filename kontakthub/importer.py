"""Duplicate detection and merge workflow for contact imports.

An import runs as a session: records are inserted one after another until
one of them matches an existing contact. The session then stops with a
merge proposal and waits for a :class:`~kontakthub.schemas.MergeResolution`.
A proposal that is never answered turns into a skip once it is older than
the configured decision timeout.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

from sqlalchemy.orm import Session

from . import crud, memberships, models, schemas
from .core import MatchPolicy
from .database import atomic
from .errors import ConstraintViolation, KontaktHubError, NotFound, ValidationError

logger = logging.getLogger(__name__)

MERGE_FIELDS = (
    ("firstName", "first_name"),
    ("lastName", "last_name"),
    ("gender", "gender"),
    ("email", "email"),
    ("phone", "phone"),
    ("mobile", "mobile"),
    ("company", "company"),
    ("street", "street"),
    ("zip", "zip"),
    ("city", "city"),
    ("country", "country"),
    ("notes", "notes"),
)
ADDRESS_KEYS = ("street", "zip", "city", "country")


@dataclass
class FieldConflict:
    field: str
    existing: Any
    incoming: Any
    selected: str

    def to_schema(self) -> schemas.FieldConflictOut:
        return schemas.FieldConflictOut(
            field=self.field,
            existing=self.existing,
            incoming=self.incoming,
            selected=self.selected,
        )


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def _same(a: Any, b: Any) -> bool:
    if isinstance(a, str) and isinstance(b, str):
        return a.strip() == b.strip()
    return a == b


def _incoming_value(fields: schemas.ContactFields, attr: str) -> Any:
    if attr in ADDRESS_KEYS:
        return getattr(fields.address, attr)
    return getattr(fields, attr)


def find_candidate_matches(
    db: Session, fields: schemas.ContactFields, policy: MatchPolicy = "discovery"
) -> list[models.Contact]:
    """
    Find existing contacts an incoming record duplicates.

    Name matches (same first and last name, ignoring case) and email
    matches (same non-empty address, ignoring case) are combined without
    repeats. The first element is the merge target.

    Args:
        db (Session): Database session.
        fields (ContactFields): Incoming contact fields.
        policy (MatchPolicy): ``email_first`` lists email matches ahead of
            name matches; ``discovery`` and ``name_first`` list names first.

    Returns:
        list[Contact]: Candidate contacts, possibly empty.
    """
    by_name = crud.find_contacts_by_name(db, fields.first_name, fields.last_name)
    by_email = crud.find_contacts_by_email(db, fields.email)
    ordered = by_email + by_name if policy == "email_first" else by_name + by_email

    unique: dict[str, models.Contact] = {}
    for contact in ordered:
        unique.setdefault(contact.id, contact)
    return list(unique.values())


def build_conflicts(
    existing: models.Contact, incoming: schemas.ContactFields
) -> list[FieldConflict]:
    """
    List the fields where an existing contact and an incoming record differ.

    Fields empty on both sides or equal after trimming are left out. The
    pre-selected side is the existing value when there is one, otherwise
    the incoming value.

    Args:
        existing (Contact): Stored contact.
        incoming (ContactFields): Incoming fields.

    Returns:
        list[FieldConflict]: Differences in display order.
    """
    pairs = [
        (name, getattr(existing, attr) or "", _incoming_value(incoming, attr) or "")
        for name, attr in MERGE_FIELDS
    ]
    stored_custom = existing.custom_fields or {}
    incoming_custom = incoming.custom_fields
    for key in dict.fromkeys([*stored_custom, *incoming_custom]):
        pairs.append((key, stored_custom.get(key, ""), incoming_custom.get(key, "")))

    conflicts = []
    for name, old, new in pairs:
        if _is_empty(old) and _is_empty(new):
            continue
        if _same(old, new):
            continue
        selected = "new" if _is_empty(old) else "existing"
        conflicts.append(FieldConflict(name, old, new, selected))
    return conflicts


def apply_merge(
    db: Session,
    primary: models.Contact,
    candidates: list[models.Contact],
    conflicts: list[FieldConflict],
    choices: dict[str, str],
) -> models.Contact:
    """
    Merge the chosen incoming values into the primary contact.

    When the merged email is taken by another candidate, that candidate
    loses the address so the primary can hold it.

    Args:
        db (Session): Database session.
        primary (Contact): Contact receiving the merge.
        candidates (list[Contact]): All matching contacts, primary included.
        conflicts (list[FieldConflict]): Differences shown to the user.
        choices (dict): Field name to ``existing`` or ``new``; fields not
            listed keep their pre-selected side.

    Raises:
        ValidationError: If ``choices`` names a field with no conflict.
        ConstraintViolation: If the merged contact would duplicate another
            contact's name or email. Nothing is written in that case.

    Returns:
        Contact: The updated primary contact.
    """
    known = {conflict.field for conflict in conflicts}
    unknown = [name for name in choices if name not in known]
    if unknown:
        raise ValidationError("Unknown merge fields", {"fields": unknown})

    attrs = dict(MERGE_FIELDS)
    with atomic(db):
        custom = dict(primary.custom_fields or {})
        for conflict in conflicts:
            if choices.get(conflict.field, conflict.selected) != "new":
                continue
            if _is_empty(conflict.incoming):
                continue
            if conflict.field in attrs:
                setattr(primary, attrs[conflict.field], conflict.incoming)
            else:
                custom[conflict.field] = conflict.incoming
        primary.custom_fields = custom

        email = (primary.email or "").lower()
        if email:
            for other in candidates:
                if other.id != primary.id and (other.email or "").lower() == email:
                    logger.info(
                        "Moving email %s from contact %s to %s",
                        primary.email,
                        other.id,
                        primary.id,
                    )
                    other.email = ""
                    other.updated_at = models.utcnow()
        primary.updated_at = models.utcnow()
        db.flush()
        crud.check_contact_unique(
            db, primary.first_name, primary.last_name, primary.email, primary.id
        )

    db.refresh(primary)
    return primary


@dataclass
class PendingDecision:
    record_index: int
    primary_id: str
    candidate_ids: list[str]
    conflicts: list[FieldConflict]
    proposed_at: float


@dataclass
class SkippedRecord:
    index: int
    name: str
    reason: str | None = None


def _record_name(fields: schemas.ContactFields) -> str:
    name = " ".join(part for part in (fields.first_name, fields.last_name) if part)
    return name or "Unnamed"


class ImportSession:
    """
    State of one import run.

    Every public method holds the session lock, so concurrent requests for
    the same import are applied one after another.

    Args:
        session_id (str): Identifier handed to the client.
        records (list[ContactCreate]): Incoming contacts in input order.
        group_id (str | None): Group that receives imported contacts.
        new_group_name (str | None): Name of a group to create at the end
            and fill with imported contacts.
        policy (MatchPolicy): Duplicate ordering policy.
        decision_timeout (float): Seconds a proposal may stay unanswered.
        clock (Callable[[], float]): Monotonic time source.
    """

    def __init__(
        self,
        session_id: str,
        records: list[schemas.ContactCreate],
        group_id: str | None = None,
        new_group_name: str | None = None,
        policy: MatchPolicy = "discovery",
        decision_timeout: float = 900,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.id = session_id
        self.records = records
        self.group_id = group_id
        self.new_group_name = new_group_name
        self.policy = policy
        self.decision_timeout = decision_timeout
        self.clock = clock
        self.cursor = 0
        self.pending: PendingDecision | None = None
        self.completed = False
        self.group_error: str | None = None
        self.imported: list[str] = []
        self.created: list[str] = []
        self.merged: list[str] = []
        self.skipped: list[SkippedRecord] = []
        self.touched_at = clock()
        self._lock = threading.RLock()

    def _skip(self, index: int, reason: str | None = None) -> None:
        name = _record_name(self.records[index].fields)
        self.skipped.append(SkippedRecord(index, name, reason))
        logger.info("Import %s: skipped record %d (%s)", self.id, index, name)

    def _insert(self, db: Session, index: int) -> None:
        record = self.records[index]
        try:
            contact = crud.create_contact(
                db,
                schemas.ContactCreate(
                    id=record.id,
                    fields=record.fields,
                    tags=record.tags,
                    archived=record.archived,
                ),
            )
        except ConstraintViolation as exc:
            self._skip(index, exc.message)
            return
        self.created.append(contact.id)
        self.imported.append(contact.id)

    def advance(self, db: Session) -> None:
        """
        Process records until a decision is needed or all are done.

        Args:
            db (Session): Database session.
        """
        with self._lock:
            self.touched_at = self.clock()
            self._settle(db)
            self._run(db)

    def _run(self, db: Session) -> None:
        while self.pending is None and self.cursor < len(self.records):
            index = self.cursor
            fields = self.records[index].fields
            candidates = find_candidate_matches(db, fields, self.policy)
            if not candidates:
                self._insert(db, index)
                self.cursor += 1
                continue
            primary = candidates[0]
            self.pending = PendingDecision(
                record_index=index,
                primary_id=primary.id,
                candidate_ids=[c.id for c in candidates],
                conflicts=build_conflicts(primary, fields),
                proposed_at=self.clock(),
            )
            logger.info(
                "Import %s: record %d matches %d contact(s)",
                self.id,
                index,
                len(candidates),
            )

        if self.pending is None and not self.completed:
            self._finish(db)

    def _settle(self, db: Session) -> str | None:
        """
        Drop a proposal that can no longer be answered.

        A timed out proposal becomes a skip. A proposal whose primary
        contact was deleted is withdrawn and its record is matched again.

        Returns:
            str | None: Why the proposal was dropped, if it was.
        """
        pending = self.pending
        if pending is None:
            return None
        if self.clock() - pending.proposed_at >= self.decision_timeout:
            logger.warning(
                "Import %s: decision for record %d timed out",
                self.id,
                pending.record_index,
            )
            self._skip(pending.record_index, "Decision timed out")
            self.pending = None
            self.cursor = pending.record_index + 1
            return "The merge decision timed out and the record was skipped"
        if db.get(models.Contact, pending.primary_id) is None:
            logger.warning(
                "Import %s: duplicate %s of record %d no longer exists",
                self.id,
                pending.primary_id,
                pending.record_index,
            )
            self.pending = None
            self.cursor = pending.record_index
            return (
                "The proposed duplicate no longer exists and the record was matched again"
            )
        return None

    def resolve(self, db: Session, resolution: schemas.MergeResolution) -> None:
        """
        Answer the pending proposal and continue the import.

        Args:
            db (Session): Database session.
            resolution (MergeResolution): Merge or skip, with field choices.

        Raises:
            ConstraintViolation: If no proposal is waiting, the proposal
                was dropped meanwhile, or the answer names another record.
            ValidationError: If a choice names a field with no conflict.
        """
        with self._lock:
            self.touched_at = self.clock()
            reason = self._settle(db)
            if reason is not None:
                self._run(db)
                raise ConstraintViolation(reason, {"importId": self.id})
            pending = self.pending
            if pending is None:
                raise ConstraintViolation(
                    "No merge decision is pending", {"importId": self.id}
                )
            if (
                resolution.record_index is not None
                and resolution.record_index != pending.record_index
            ):
                raise ConstraintViolation(
                    "The answer does not belong to the pending proposal",
                    {"importId": self.id, "recordIndex": pending.record_index},
                )

            if resolution.action == "skip":
                self._skip(pending.record_index)
            else:
                self._merge(db, pending, resolution.choices)
            self.pending = None
            self.cursor = pending.record_index + 1
            self._run(db)

    def _merge(self, db: Session, pending: PendingDecision, choices: dict) -> None:
        primary = memberships.require_entity(db, models.Contact, pending.primary_id)
        candidates = [
            contact
            for contact in (db.get(models.Contact, cid) for cid in pending.candidate_ids)
            if contact is not None
        ]
        try:
            apply_merge(db, primary, candidates, pending.conflicts, choices)
        except ConstraintViolation as exc:
            self._skip(pending.record_index, exc.message)
            return
        self.merged.append(primary.id)
        if primary.id not in self.imported:
            self.imported.append(primary.id)
        logger.info(
            "Import %s: merged record %d into %s",
            self.id,
            pending.record_index,
            primary.id,
        )

    def expire_pending(self, db: Session) -> bool:
        """
        Drop a proposal that timed out or lost its duplicate and continue.

        Returns:
            bool: ``True`` if a proposal was dropped.
        """
        with self._lock:
            if self._settle(db) is None:
                return False
            self._run(db)
            return True

    def _finish(self, db: Session) -> None:
        if self.imported and (self.group_id is not None or self.new_group_name):
            try:
                self._assign_group(db)
            except KontaktHubError as exc:
                self.group_error = exc.message
                logger.warning(
                    "Import %s: group assignment failed: %s", self.id, exc.message
                )
        self.completed = True

    def _assign_group(self, db: Session) -> None:
        with atomic(db):
            if self.group_id is None:
                group = crud.create_group(
                    db, schemas.GroupCreate(name=self.new_group_name)
                )
                self.group_id = group.id
            elif db.get(models.Group, self.group_id) is None:
                raise NotFound("Target group no longer exists", {"id": self.group_id})
            assigned = [
                cid for cid in self.imported if db.get(models.Contact, cid) is not None
            ]
            for contact_id in assigned:
                memberships.add_membership(
                    db, memberships.GROUP_CONTACTS, self.group_id, contact_id
                )
        logger.info(
            "Import %s: %d contact(s) assigned to group %s",
            self.id,
            len(assigned),
            self.group_id,
        )

    def status(self, db: Session) -> schemas.ImportStatusOut:
        """Build the client-facing view of the session."""
        with self._lock:
            proposal = None
            pending = self.pending
            primary = db.get(models.Contact, pending.primary_id) if pending else None
            if primary is not None:
                proposal = schemas.MergeProposalOut(
                    record_index=pending.record_index,
                    incoming=self.records[pending.record_index].fields,
                    primary=crud.contact_to_schema(db, primary),
                    candidate_ids=pending.candidate_ids,
                    conflicts=[c.to_schema() for c in pending.conflicts],
                )
            return schemas.ImportStatusOut(
                id=self.id,
                state="completed" if self.completed else "awaiting_decision",
                group_id=self.group_id,
                group_error=self.group_error,
                total=len(self.records),
                processed=self.cursor,
                proposal=proposal,
                imported_ids=self.imported,
                created_ids=self.created,
                merged_ids=self.merged,
                skipped=[
                    schemas.SkippedRecordOut(
                        index=s.index, name=s.name, reason=s.reason
                    )
                    for s in self.skipped
                ],
            )


class ImportRegistry:
    """
    In-memory store of import sessions.

    Args:
        decision_timeout (float): Seconds a proposal may stay unanswered.
        session_ttl (float): Seconds an untouched session is kept.
        clock (Callable[[], float]): Monotonic time source.
    """

    def __init__(
        self,
        decision_timeout: float = 900,
        session_ttl: float = 3600,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.decision_timeout = decision_timeout
        self.session_ttl = session_ttl
        self.clock = clock
        self._sessions: dict[str, ImportSession] = {}
        self._lock = threading.Lock()

    def _purge(self) -> None:
        now = self.clock()
        stale = [
            sid
            for sid, session in self._sessions.items()
            if now - session.touched_at > self.session_ttl
        ]
        for sid in stale:
            logger.debug("Dropping idle import session %s", sid)
            del self._sessions[sid]

    def start(
        self,
        db: Session,
        request: schemas.ImportRequest,
        default_policy: MatchPolicy = "discovery",
    ) -> ImportSession:
        """
        Open a session for an import request and run it to the first stop.

        Args:
            db (Session): Database session.
            request (ImportRequest): Records and group target.
            default_policy (MatchPolicy): Policy when the request sets none.

        Raises:
            NotFound: If the target group does not exist.

        Returns:
            ImportSession: The new session.
        """
        if request.group_id is not None:
            memberships.require_entity(db, models.Group, request.group_id)

        session = ImportSession(
            models.new_id(),
            list(request.contacts),
            group_id=request.group_id,
            new_group_name=request.new_group_name,
            policy=request.match_policy or default_policy,
            decision_timeout=self.decision_timeout,
            clock=self.clock,
        )
        with self._lock:
            self._purge()
            self._sessions[session.id] = session
        logger.info(
            "Import %s started with %d record(s)", session.id, len(session.records)
        )
        session.advance(db)
        return session

    def get(self, session_id: str) -> ImportSession:
        """
        Look up a session.

        Raises:
            NotFound: If the session is unknown or expired.
        """
        with self._lock:
            self._purge()
            session = self._sessions.get(session_id)
        if session is None:
            raise NotFound("Import not found", {"id": session_id})
        session.touched_at = self.clock()
        return session
