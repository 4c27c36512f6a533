"""Many-to-many membership synchronisation.

Contacts belong to groups, and events invite groups and individual
contacts. Each relation is a plain join row; this module is the only
place that writes those rows. Every public operation runs inside
:func:`kontakthub.database.atomic`, so a failure leaves the join tables
untouched.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import Column, Table, delete, insert, select
from sqlalchemy.orm import Session

from . import models
from .database import atomic
from .errors import NotFound

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MembershipKind:
    """One direction of a many-to-many relation.

    Attributes:
        table: Join table holding the rows.
        parent_model: Entity that owns the membership list.
        parent_key: Join table column referencing the parent.
        child_model: Entity listed in the membership list.
        child_key: Join table column referencing the child.
    """

    table: Table
    parent_model: type
    parent_key: str
    child_model: type
    child_key: str

    @property
    def parent_column(self) -> Column:
        return self.table.c[self.parent_key]

    @property
    def child_column(self) -> Column:
        return self.table.c[self.child_key]


CONTACT_GROUPS = MembershipKind(
    models.contact_groups, models.Contact, "contact_id", models.Group, "group_id"
)
GROUP_CONTACTS = MembershipKind(
    models.contact_groups, models.Group, "group_id", models.Contact, "contact_id"
)
EVENT_GROUPS = MembershipKind(
    models.event_groups, models.Event, "event_id", models.Group, "group_id"
)
EVENT_CONTACTS = MembershipKind(
    models.event_contacts, models.Event, "event_id", models.Contact, "contact_id"
)

KINDS = (CONTACT_GROUPS, GROUP_CONTACTS, EVENT_GROUPS, EVENT_CONTACTS)


def require_entity(db: Session, model: type, entity_id: str):
    """
    Load an entity by primary key or fail.

    Args:
        db (Session): Database session.
        model (type): ORM model class.
        entity_id (str): Primary key.

    Raises:
        NotFound: If no row with that id exists.

    Returns:
        The ORM instance.
    """
    entity = db.get(model, entity_id)
    if entity is None:
        raise NotFound(f"{model.__name__} not found", {"id": entity_id})
    return entity


def list_children(db: Session, kind: MembershipKind, parent_id: str) -> list[str]:
    """
    Return the child ids of a parent in the order they were added.

    Args:
        db (Session): Database session.
        kind (MembershipKind): Relation to read.
        parent_id (str): Parent identifier.

    Returns:
        list[str]: Child identifiers.
    """
    stmt = (
        select(kind.child_column)
        .where(kind.parent_column == parent_id)
        .order_by(kind.table.c.created_at, kind.child_column)
    )
    return list(db.scalars(stmt).all())


def _has_row(db: Session, kind: MembershipKind, parent_id: str, child_id: str) -> bool:
    stmt = select(kind.child_column).where(
        kind.parent_column == parent_id, kind.child_column == child_id
    )
    return db.execute(stmt).first() is not None


def _insert_row(db: Session, kind: MembershipKind, parent_id: str, child_id: str):
    db.execute(
        insert(kind.table).values(
            {
                kind.parent_key: parent_id,
                kind.child_key: child_id,
                "created_at": models.utcnow(),
            }
        )
    )


def add_membership(db: Session, kind: MembershipKind, parent_id: str, child_id: str):
    """
    Link a child to a parent.

    Adding an existing membership changes nothing.

    Args:
        db (Session): Database session.
        kind (MembershipKind): Relation to write.
        parent_id (str): Parent identifier.
        child_id (str): Child identifier.

    Raises:
        NotFound: If the parent or the child does not exist.

    Returns:
        The parent ORM instance.
    """
    with atomic(db):
        parent = require_entity(db, kind.parent_model, parent_id)
        require_entity(db, kind.child_model, child_id)
        if not _has_row(db, kind, parent_id, child_id):
            _insert_row(db, kind, parent_id, child_id)
            parent.updated_at = models.utcnow()
            logger.debug(
                "Linked %s %s -> %s",
                kind.table.name,
                parent_id,
                child_id,
            )
    return parent


def remove_membership(
    db: Session, kind: MembershipKind, parent_id: str, child_id: str
):
    """
    Unlink a child from a parent.

    Removing a membership that does not exist is a no-op.

    Args:
        db (Session): Database session.
        kind (MembershipKind): Relation to write.
        parent_id (str): Parent identifier.
        child_id (str): Child identifier.

    Raises:
        NotFound: If the parent does not exist.

    Returns:
        The parent ORM instance.
    """
    with atomic(db):
        parent = require_entity(db, kind.parent_model, parent_id)
        result = db.execute(
            delete(kind.table).where(
                kind.parent_column == parent_id, kind.child_column == child_id
            )
        )
        if result.rowcount:
            parent.updated_at = models.utcnow()
    return parent


def replace_memberships(
    db: Session, kind: MembershipKind, parent_id: str, child_ids: list[str]
):
    """
    Replace the full membership list of a parent.

    Existing rows are dropped and one row per distinct id is inserted;
    order and duplicates in ``child_ids`` do not matter.

    Args:
        db (Session): Database session.
        kind (MembershipKind): Relation to write.
        parent_id (str): Parent identifier.
        child_ids (list[str]): Complete new list of child ids.

    Raises:
        NotFound: If the parent or any of the children does not exist.
            Nothing is changed in that case.

    Returns:
        The parent ORM instance.
    """
    wanted = list(dict.fromkeys(child_ids))
    with atomic(db):
        parent = require_entity(db, kind.parent_model, parent_id)
        if wanted:
            pk = kind.child_model.id
            found = set(db.scalars(select(pk).where(pk.in_(wanted))).all())
            missing = [child_id for child_id in wanted if child_id not in found]
            if missing:
                raise NotFound(
                    f"{kind.child_model.__name__} not found", {"ids": missing}
                )

        db.execute(delete(kind.table).where(kind.parent_column == parent_id))
        for child_id in wanted:
            _insert_row(db, kind, parent_id, child_id)
        parent.updated_at = models.utcnow()
    return parent


def delete_parent(db: Session, model: type, entity_id: str) -> None:
    """
    Delete an entity together with every join row that references it.

    Args:
        db (Session): Database session.
        model (type): ``Contact``, ``Group`` or ``Event``.
        entity_id (str): Identifier of the entity to delete.

    Raises:
        NotFound: If the entity does not exist.
    """
    with atomic(db):
        entity = require_entity(db, model, entity_id)
        columns = {}
        for kind in KINDS:
            if kind.parent_model is model:
                columns[(kind.table.name, kind.parent_key)] = kind.parent_column
            if kind.child_model is model:
                columns[(kind.table.name, kind.child_key)] = kind.child_column
        for column in columns.values():
            db.execute(delete(column.table).where(column == entity_id))
        db.delete(entity)
    logger.info("Deleted %s %s", model.__name__, entity_id)


def get_attendees(db: Session, event_id: str) -> list[models.Contact]:
    """
    Compute everyone invited to an event.

    The result is the members of every invited group followed by the
    individually invited contacts, each contact exactly once. References
    to groups or contacts that no longer exist contribute nothing.

    Args:
        db (Session): Database session.
        event_id (str): Event identifier.

    Raises:
        NotFound: If the event does not exist.

    Returns:
        list[Contact]: Attending contacts.
    """
    require_entity(db, models.Event, event_id)

    attendee_ids: dict[str, None] = {}
    for group_id in list_children(db, EVENT_GROUPS, event_id):
        if db.get(models.Group, group_id) is None:
            logger.warning("Event %s references missing group %s", event_id, group_id)
            continue
        for contact_id in list_children(db, GROUP_CONTACTS, group_id):
            attendee_ids.setdefault(contact_id)
    for contact_id in list_children(db, EVENT_CONTACTS, event_id):
        attendee_ids.setdefault(contact_id)

    if not attendee_ids:
        return []
    found = {
        contact.id: contact
        for contact in db.scalars(
            select(models.Contact).where(models.Contact.id.in_(list(attendee_ids)))
        )
    }
    return [found[cid] for cid in attendee_ids if cid in found]
