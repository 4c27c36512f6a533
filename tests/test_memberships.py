import pytest
from sqlalchemy import create_engine, insert, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from kontakthub import memberships, models
from kontakthub.database import Base
from kontakthub.errors import NotFound
from kontakthub.memberships import (
    CONTACT_GROUPS,
    EVENT_CONTACTS,
    EVENT_GROUPS,
    GROUP_CONTACTS,
)


def add_contact(db, first_name, last_name=""):
    contact = models.Contact(first_name=first_name, last_name=last_name)
    db.add(contact)
    db.commit()
    return contact


def add_group(db, name):
    group = models.Group(name=name)
    db.add(group)
    db.commit()
    return group


def add_event(db, name):
    event = models.Event(name=name)
    db.add(event)
    db.commit()
    return event


def join_rows(db, table, column, value):
    return db.execute(select(table).where(table.c[column] == value)).all()


def test_add_membership_is_idempotent(db_session):
    contact = add_contact(db_session, "Anna", "Weber")
    group = add_group(db_session, "Chor")

    memberships.add_membership(db_session, GROUP_CONTACTS, group.id, contact.id)
    memberships.add_membership(db_session, GROUP_CONTACTS, group.id, contact.id)

    rows = join_rows(db_session, models.contact_groups, "group_id", group.id)
    assert len(rows) == 1
    assert memberships.list_children(db_session, CONTACT_GROUPS, contact.id) == [group.id]


def test_add_membership_requires_both_sides(db_session):
    group = add_group(db_session, "Chor")

    with pytest.raises(NotFound):
        memberships.add_membership(db_session, GROUP_CONTACTS, group.id, "ghost")
    with pytest.raises(NotFound):
        memberships.add_membership(db_session, GROUP_CONTACTS, "ghost", group.id)


def test_remove_non_member_is_noop(db_session):
    contact = add_contact(db_session, "Anna", "Weber")
    group = add_group(db_session, "Chor")
    before = group.updated_at

    memberships.remove_membership(db_session, GROUP_CONTACTS, group.id, contact.id)

    db_session.refresh(group)
    assert group.updated_at == before


def test_remove_membership_requires_parent(db_session):
    with pytest.raises(NotFound):
        memberships.remove_membership(db_session, EVENT_GROUPS, "ghost", "x")


def test_replace_round_trip_dedupes(db_session):
    contact = add_contact(db_session, "Anna", "Weber")
    g1 = add_group(db_session, "G1")
    g2 = add_group(db_session, "G2")
    g3 = add_group(db_session, "G3")
    memberships.add_membership(db_session, CONTACT_GROUPS, contact.id, g3.id)

    memberships.replace_memberships(
        db_session, CONTACT_GROUPS, contact.id, [g2.id, g1.id, g2.id, g1.id]
    )

    result = memberships.list_children(db_session, CONTACT_GROUPS, contact.id)
    assert sorted(result) == sorted([g1.id, g2.id])
    assert len(result) == 2


def test_replace_with_empty_list_clears(db_session):
    contact = add_contact(db_session, "Anna", "Weber")
    group = add_group(db_session, "G1")
    memberships.add_membership(db_session, CONTACT_GROUPS, contact.id, group.id)

    memberships.replace_memberships(db_session, CONTACT_GROUPS, contact.id, [])

    assert memberships.list_children(db_session, CONTACT_GROUPS, contact.id) == []


def test_replace_with_unknown_id_changes_nothing(db_session):
    contact = add_contact(db_session, "Anna", "Weber")
    group = add_group(db_session, "G1")
    memberships.add_membership(db_session, CONTACT_GROUPS, contact.id, group.id)

    with pytest.raises(NotFound) as excinfo:
        memberships.replace_memberships(
            db_session, CONTACT_GROUPS, contact.id, ["ghost"]
        )

    assert excinfo.value.details == {"ids": ["ghost"]}
    assert memberships.list_children(db_session, CONTACT_GROUPS, contact.id) == [
        group.id
    ]


def test_delete_parent_removes_every_reference(db_session):
    contact = add_contact(db_session, "Anna", "Weber")
    group = add_group(db_session, "G1")
    event = add_event(db_session, "Gala")
    memberships.add_membership(db_session, CONTACT_GROUPS, contact.id, group.id)
    memberships.add_membership(db_session, EVENT_CONTACTS, event.id, contact.id)
    memberships.add_membership(db_session, EVENT_GROUPS, event.id, group.id)
    contact_id, group_id = contact.id, group.id

    memberships.delete_parent(db_session, models.Contact, contact_id)

    assert join_rows(db_session, models.contact_groups, "contact_id", contact_id) == []
    assert join_rows(db_session, models.event_contacts, "contact_id", contact_id) == []
    assert db_session.get(models.Contact, contact_id) is None
    assert memberships.list_children(db_session, EVENT_GROUPS, event.id) == [group_id]

    memberships.delete_parent(db_session, models.Group, group_id)

    assert join_rows(db_session, models.event_groups, "group_id", group_id) == []


def test_delete_parent_unknown(db_session):
    with pytest.raises(NotFound):
        memberships.delete_parent(db_session, models.Event, "ghost")


def test_get_attendees_union(db_session):
    a = add_contact(db_session, "A")
    b = add_contact(db_session, "B")
    c = add_contact(db_session, "C")
    d = add_contact(db_session, "D")
    g1 = add_group(db_session, "G1")
    g2 = add_group(db_session, "G2")
    event = add_event(db_session, "Gala")
    memberships.replace_memberships(db_session, GROUP_CONTACTS, g1.id, [a.id, b.id])
    memberships.replace_memberships(db_session, GROUP_CONTACTS, g2.id, [b.id, c.id])
    memberships.replace_memberships(db_session, EVENT_GROUPS, event.id, [g1.id, g2.id])
    memberships.add_membership(db_session, EVENT_CONTACTS, event.id, d.id)

    attendees = memberships.get_attendees(db_session, event.id)

    ids = [contact.id for contact in attendees]
    assert sorted(ids) == sorted([a.id, b.id, c.id, d.id])
    assert len(ids) == len(set(ids))


@pytest.fixture()
def loose_session():
    """Session on a database without foreign key enforcement."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


def test_get_attendees_ignores_dangling_references(loose_session):
    db = loose_session
    a = add_contact(db, "A")
    event = add_event(db, "Gala")
    now = models.utcnow()
    db.execute(
        insert(models.event_groups).values(
            event_id=event.id, group_id="deleted-group", created_at=now
        )
    )
    db.execute(
        insert(models.event_contacts).values(
            event_id=event.id, contact_id="deleted-contact", created_at=now
        )
    )
    db.execute(
        insert(models.event_contacts).values(
            event_id=event.id, contact_id=a.id, created_at=now
        )
    )
    db.commit()

    attendees = memberships.get_attendees(db, event.id)

    assert [contact.id for contact in attendees] == [a.id]
