from datetime import date, timedelta

from fastapi import status
from sqlalchemy import select

from kontakthub import models

API = "/api/v1"


def test_create_event_with_invitations(client, make_contact, make_group, make_event):
    anna = make_contact("Anna", "Weber")
    group = make_group("Chor")

    event = make_event(
        "Sommerfest",
        group_ids=[group["id"]],
        contact_ids=[anna["id"]],
        eventDate="2026-07-04",
        location="Stadtpark",
    )
    assert event["eventDate"] == "2026-07-04"
    assert event["attendees"] == {"groupIds": [group["id"]], "contactIds": [anna["id"]]}


def test_event_date_is_validated(client):
    response = client.post(
        f"{API}/events", json={"name": "Fest", "eventDate": "04.07.2026"}
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["details"]["eventDate"].endswith(
        "Invalid date, expected YYYY-MM-DD"
    )


def test_event_with_unknown_group_is_not_created(client):
    response = client.post(
        f"{API}/events",
        json={"name": "Fest", "attendees": {"groupIds": ["ghost"]}},
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert client.get(f"{API}/events").json() == []


def test_attendees_are_deduplicated(client, make_contact, make_group, make_event):
    a = make_contact("Anton", "A")
    b = make_contact("Berta", "B")
    c = make_contact("Cäsar", "C")
    d = make_contact("Dora", "D")
    g1 = make_group("G1", [a["id"], b["id"]])
    g2 = make_group("G2", [b["id"], c["id"]])
    event = make_event("Gala", group_ids=[g1["id"], g2["id"]], contact_ids=[d["id"]])

    response = client.get(f"{API}/events/{event['id']}/attendees")
    assert response.status_code == status.HTTP_200_OK
    ids = [contact["id"] for contact in response.json()]
    assert len(ids) == 4
    assert set(ids) == {a["id"], b["id"], c["id"], d["id"]}
    assert ids[-1] == d["id"]


def test_attendee_in_group_and_invited_listed_once(
    client, make_contact, make_group, make_event
):
    a = make_contact("Anton", "A")
    group = make_group("G1", [a["id"]])
    event = make_event("Gala", group_ids=[group["id"]], contact_ids=[a["id"]])

    ids = [c["id"] for c in client.get(f"{API}/events/{event['id']}/attendees").json()]
    assert ids == [a["id"]]


def test_invite_and_uninvite(client, make_contact, make_group, make_event):
    a = make_contact("Anton", "A")
    group = make_group("G1")
    event = make_event("Gala")

    resp = client.post(f"{API}/events/{event['id']}/groups/{group['id']}")
    assert resp.status_code == status.HTTP_200_OK
    assert resp.json()["attendees"]["groupIds"] == [group["id"]]

    resp = client.post(f"{API}/events/{event['id']}/contacts/{a['id']}")
    assert resp.json()["attendees"]["contactIds"] == [a["id"]]

    resp = client.delete(f"{API}/events/{event['id']}/groups/{group['id']}")
    assert resp.json()["attendees"]["groupIds"] == []

    resp = client.delete(f"{API}/events/{event['id']}/contacts/{a['id']}")
    assert resp.json()["attendees"]["contactIds"] == []

    assert client.post(f"{API}/events/{event['id']}/groups/ghost").status_code == 404
    assert client.post(f"{API}/events/ghost/contacts/{a['id']}").status_code == 404


def test_update_event_replaces_only_given_lists(
    client, make_contact, make_group, make_event
):
    a = make_contact("Anton", "A")
    b = make_contact("Berta", "B")
    group = make_group("G1")
    event = make_event("Gala", group_ids=[group["id"]], contact_ids=[a["id"]])

    response = client.put(
        f"{API}/events/{event['id']}",
        json={"location": "Rathaus", "attendees": {"contactIds": [b["id"], b["id"]]}},
    )
    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["location"] == "Rathaus"
    assert body["name"] == "Gala"
    assert body["attendees"] == {"groupIds": [group["id"]], "contactIds": [b["id"]]}


def test_filter_past_future_today(client, make_event):
    today = date.today()
    make_event("Gestern", eventDate=(today - timedelta(days=1)).isoformat())
    make_event("Heute", eventDate=today.isoformat())
    make_event("Morgen", eventDate=(today + timedelta(days=1)).isoformat())
    make_event("Irgendwann")

    def names(when):
        resp = client.get(f"{API}/events", params={"filter": when})
        assert resp.status_code == status.HTTP_200_OK
        return [e["name"] for e in resp.json()]

    assert names("past") == ["Gestern"]
    assert names("today") == ["Heute"]
    assert names("future") == ["Heute", "Morgen"]
    assert len(client.get(f"{API}/events").json()) == 4


def test_unknown_filter_is_rejected(client):
    response = client.get(f"{API}/events", params={"filter": "someday"})
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_delete_event_and_cascade(
    client, db_session, make_contact, make_group, make_event
):
    a = make_contact("Anton", "A")
    group = make_group("G1", [a["id"]])
    event = make_event("Gala", group_ids=[group["id"]], contact_ids=[a["id"]])

    assert client.delete(f"{API}/events/{event['id']}").status_code == 204
    assert client.get(f"{API}/events/{event['id']}").status_code == 404

    for table in (models.event_groups, models.event_contacts):
        rows = db_session.execute(
            select(table).where(table.c.event_id == event["id"])
        ).all()
        assert rows == []
    assert client.get(f"{API}/groups/{group['id']}").json()["contactIds"] == [a["id"]]


def test_export_event_attendees(client, make_contact, make_group, make_event):
    erika = make_contact("Erika", "Musterfrau", gender="female")
    kim = make_contact("Kim", "Lee", gender="diverse")
    group = make_group("G1", [erika["id"]])
    event = make_event("Gala", group_ids=[group["id"]], contact_ids=[kim["id"]])

    response = client.get(f"{API}/events/{event['id']}/export")
    assert response.status_code == status.HTTP_200_OK
    lines = response.content.decode("utf-8-sig").splitlines()
    assert lines[1].startswith("Sehr geehrte Frau Musterfrau;Erika;Musterfrau")
    assert lines[2].startswith("Sehr geehrte/r Lee;Kim;Lee")
