from fastapi import status

API = "/api/v1"


def test_create_and_list_contacts(client, make_contact):
    make_contact("John", "Doe", "john@example.com", phone="+49 30 12345")

    list_resp = client.get(f"{API}/contacts")
    assert list_resp.status_code == status.HTTP_200_OK
    data = list_resp.json()
    assert len(data) == 1
    fields = data[0]["fields"]
    assert fields["firstName"] == "John"
    assert fields["lastName"] == "Doe"
    assert fields["email"] == "john@example.com"
    assert fields["phone"] == "+49 30 12345"
    assert fields["address"] == {"street": "", "city": "", "zip": "", "country": ""}
    assert data[0]["groupIds"] == []
    assert data[0]["archived"] is False


def test_create_contact_keeps_custom_fields(client, make_contact):
    created = make_contact("Anna", "Weber", salutation="Liebe Anna", birthday="1990-05-01")

    fetched = client.get(f"{API}/contacts/{created['id']}").json()
    assert fetched["fields"]["salutation"] == "Liebe Anna"
    assert fetched["fields"]["birthday"] == "1990-05-01"


def test_create_contact_requires_a_name(client):
    response = client.post(f"{API}/contacts", json={"fields": {"email": "x@example.com"}})
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    body = response.json()
    assert body["error"] == "Validation error"
    assert body["details"]


def test_create_contact_rejects_bad_phone(client):
    response = client.post(
        f"{API}/contacts", json={"fields": {"lastName": "Doe", "phone": "call me"}}
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert "fields.phone" in response.json()["details"]


def test_duplicate_name_is_rejected(client, make_contact):
    make_contact("Max", "Mustermann")

    response = client.post(
        f"{API}/contacts",
        json={"fields": {"firstName": "max", "lastName": "MUSTERMANN"}},
    )
    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["error"] == "Constraint violation"


def test_duplicate_email_is_rejected(client, make_contact):
    make_contact("Max", "Mustermann", "max@example.com")

    response = client.post(
        f"{API}/contacts",
        json={"fields": {"firstName": "Moritz", "email": "MAX@example.com"}},
    )
    assert response.status_code == status.HTTP_409_CONFLICT


def test_create_with_unknown_group_is_not_found(client):
    response = client.post(
        f"{API}/contacts",
        json={"fields": {"lastName": "Doe"}, "groupIds": ["missing"]},
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert client.get(f"{API}/contacts").json() == []


def test_client_supplied_id_is_kept(client):
    response = client.post(
        f"{API}/contacts", json={"id": "c-1", "fields": {"lastName": "Doe"}}
    )
    assert response.status_code == status.HTTP_201_CREATED
    assert response.json()["id"] == "c-1"

    again = client.post(
        f"{API}/contacts", json={"id": "c-1", "fields": {"lastName": "Other"}}
    )
    assert again.status_code == status.HTTP_409_CONFLICT


def test_get_unknown_contact(client):
    response = client.get(f"{API}/contacts/nope")
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["message"] == "Contact not found"


def test_update_contact_patches_fields(client, make_contact):
    created = make_contact("Jane", "Smith", "jane@example.com", company="ACME")

    response = client.put(
        f"{API}/contacts/{created['id']}",
        json={"fields": {"company": "Initech", "address": {"city": "Berlin"}}},
    )
    assert response.status_code == status.HTTP_200_OK
    fields = response.json()["fields"]
    assert fields["company"] == "Initech"
    assert fields["address"]["city"] == "Berlin"
    assert fields["firstName"] == "Jane"
    assert fields["email"] == "jane@example.com"


def test_update_cannot_remove_both_names(client, make_contact):
    created = make_contact("Jane", "Smith")

    response = client.put(
        f"{API}/contacts/{created['id']}",
        json={"fields": {"firstName": "", "lastName": "  "}},
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    fetched = client.get(f"{API}/contacts/{created['id']}").json()
    assert fetched["fields"]["lastName"] == "Smith"


def test_update_to_taken_email_conflicts(client, make_contact):
    make_contact("Jane", "Smith", "jane@example.com")
    other = make_contact("John", "Doe", "john@example.com")

    response = client.put(
        f"{API}/contacts/{other['id']}", json={"fields": {"email": "jane@example.com"}}
    )
    assert response.status_code == status.HTTP_409_CONFLICT


def test_search_and_archived_filter(client, make_contact):
    make_contact("Anna", "Weber", notes="Chorprobe")
    bob = make_contact("Bob", "Baumann", company="Weberei GmbH")
    make_contact("Carl", "Clausen")
    client.put(f"{API}/contacts/{bob['id']}", json={"archived": True})

    found = client.get(f"{API}/contacts", params={"search": "weber"}).json()
    assert {c["fields"]["firstName"] for c in found} == {"Anna", "Bob"}

    found = client.get(f"{API}/contacts", params={"search": "CHOR"}).json()
    assert [c["fields"]["firstName"] for c in found] == ["Anna"]

    active = client.get(f"{API}/contacts", params={"archived": "false"}).json()
    assert {c["fields"]["firstName"] for c in active} == {"Anna", "Carl"}


def test_sorting(client, make_contact):
    make_contact("Anna", "Zander")
    make_contact("Bert", "Albers")
    make_contact("Carl", "Meyer")

    by_last = client.get(f"{API}/contacts").json()
    assert [c["fields"]["lastName"] for c in by_last] == ["Albers", "Meyer", "Zander"]

    by_first_desc = client.get(
        f"{API}/contacts", params={"sortBy": "firstName", "sortOrder": "desc"}
    ).json()
    assert [c["fields"]["firstName"] for c in by_first_desc] == ["Carl", "Bert", "Anna"]

    unknown = client.get(f"{API}/contacts", params={"sortBy": "shoeSize"}).json()
    assert [c["fields"]["lastName"] for c in unknown] == ["Albers", "Meyer", "Zander"]


def test_gender_unset_is_stored_as_empty(client):
    response = client.post(
        f"{API}/contacts", json={"fields": {"lastName": "Doe", "gender": "unset"}}
    )
    assert response.status_code == status.HTTP_201_CREATED
    assert response.json()["fields"]["gender"] == ""


def test_delete_contact(client, make_contact):
    created = make_contact("John", "Doe")

    response = client.delete(f"{API}/contacts/{created['id']}")
    assert response.status_code == status.HTTP_204_NO_CONTENT
    assert client.get(f"{API}/contacts/{created['id']}").status_code == 404
    assert client.delete(f"{API}/contacts/{created['id']}").status_code == 404


def test_duplicate_check_folds_umlauts(client, make_contact):
    make_contact("Jürgen", "Ölmann", "Juergen.Oelmann@example.com")

    by_name = client.post(
        f"{API}/contacts", json={"fields": {"firstName": "JÜRGEN", "lastName": "ölmann"}}
    )
    by_email = client.post(
        f"{API}/contacts",
        json={"fields": {"firstName": "Jo", "email": "juergen.oelmann@example.com"}},
    )

    assert by_name.status_code == status.HTTP_409_CONFLICT
    assert by_email.status_code == status.HTTP_409_CONFLICT
