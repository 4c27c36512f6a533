import pytest
from fastapi import status

from kontakthub import models, parsing
from kontakthub.errors import ValidationError
from kontakthub.exports import export_filename, letter_salutation, mail_merge_csv

API = "/api/v1"

VCARDS = """BEGIN:VCARD
VERSION:3.0
N:Mustermann;Max;;;
FN:Max Mustermann
EMAIL;TYPE=INTERNET:max@example.com
EMAIL;TYPE=INTERNET:max.private@example.com
TEL;TYPE=CELL:+49 171 1234567
ADR;TYPE=HOME:;;Hauptstr. 1;Berlin;;10115;Deutschland
END:VCARD
BEGIN:VCARD
VERSION:3.0
N:;;;;
FN:Nobody
END:VCARD
"""


def test_parse_semicolon_csv():
    text = (
        "Nachname;Vorname;Straße;PLZ;Ort;E-Mail1;Telefon;Titel\n"
        "Weber;Anna;Gartenweg 3;50667;Köln;anna@example.com;0221 123;Dr.\n"
    )

    records = parsing.parse_csv(text)

    assert len(records) == 1
    fields = records[0].fields
    assert fields.last_name == "Weber"
    assert fields.first_name == "Anna"
    assert fields.email == "anna@example.com"
    assert fields.phone == "0221 123"
    assert fields.address.street == "Gartenweg 3"
    assert fields.address.zip == "50667"
    assert fields.address.city == "Köln"
    assert fields.custom_fields == {"title": "Dr."}


def test_parse_csv_delimiters():
    tab = "Name\tVorname\tMail\nBraun\tBob\tbob@example.com\n"
    comma = "Name,Vorname,ZustellOrt\nBraun,Bob,Bonn\n"
    spaces = "Name    Vorname\nBraun    Bob\n"

    assert parsing.parse_csv(tab)[0].fields.email == "bob@example.com"
    assert parsing.parse_csv(comma)[0].fields.address.city == "Bonn"
    assert parsing.parse_csv(spaces)[0].fields.first_name == "Bob"


def test_parse_csv_salutations():
    text = (
        "Anrede;Briefanrede;Nachname\n"
        "Frau;Sehr geehrter Herr Weber;Weber\n"
    )
    fields = parsing.parse_csv(text)[0].fields
    assert fields.gender == "male"
    assert fields.custom_fields["salutation"] == "Sehr geehrter Herr Weber"

    only_anrede = "Anrede;Nachname\nFrau;Weber\nDivers;Braun\n"
    genders = [r.fields.gender for r in parsing.parse_csv(only_anrede)]
    assert genders == ["female", "diverse"]


def test_parse_csv_drops_nameless_rows():
    text = "\ufeffNachname;Vorname;Ort\n;;Berlin\nWeber;;\n"

    records = parsing.parse_csv(text)

    assert [r.fields.last_name for r in records] == ["Weber"]


def test_parse_csv_needs_header_and_rows():
    assert parsing.parse_csv("Nachname;Vorname\n") == []
    assert parsing.parse_csv("") == []


def test_parse_vcard():
    records = parsing.parse_vcard(VCARDS)

    assert len(records) == 1
    fields = records[0].fields
    assert fields.first_name == "Max"
    assert fields.last_name == "Mustermann"
    assert fields.email == "max@example.com"
    assert fields.phone == "+49 171 1234567"
    assert fields.address.street == "Hauptstr. 1"
    assert fields.address.city == "Berlin"
    assert fields.address.zip == "10115"
    assert fields.address.country == "Deutschland"


def test_parse_vcard_garbage_returns_empty():
    assert parsing.parse_vcard("BEGIN:VCARD\nthis is not a card") == []


def test_parse_upload_endpoint(client):
    content = "Nachname;Vorname\nWeber;Anna\n".encode("utf-8")

    response = client.post(
        f"{API}/imports/parse", files={"file": ("kontakte.csv", content, "text/csv")}
    )

    assert response.status_code == status.HTTP_200_OK
    assert response.json()[0]["fields"]["lastName"] == "Weber"


def test_parse_upload_rejects_unknown_type(client):
    response = client.post(
        f"{API}/imports/parse", files={"file": ("kontakte.xlsx", b"PK", "application/zip")}
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_letter_salutation():
    assert letter_salutation(models.Contact(last_name="Weber", gender="male")) == (
        "Sehr geehrter Herr Weber"
    )
    assert letter_salutation(models.Contact(last_name="Weber", gender="female")) == (
        "Sehr geehrte Frau Weber"
    )
    assert letter_salutation(models.Contact(last_name="", gender="")) == "Sehr geehrte/r"


def test_mail_merge_csv_format():
    contact = models.Contact(
        first_name="Anna",
        last_name="Weber",
        gender="female",
        street="Gartenweg 3",
        zip="50667",
        city="Köln",
        country="Deutschland",
    )

    output = mail_merge_csv([contact])

    assert output.startswith("\ufeff")
    assert output[1:].splitlines() == [
        "Anrede;Vorname;Nachname;Straße;PLZ;Ort;Land",
        "Sehr geehrte Frau Weber;Anna;Weber;Gartenweg 3;50667;Köln;Deutschland",
    ]


def test_mail_merge_csv_requires_contacts():
    with pytest.raises(ValidationError):
        mail_merge_csv([])


def test_export_filename():
    assert export_filename("Vorstand 2026") == "serienbrief_vorstand_2026.csv"
    assert export_filename("!!!") == "serienbrief_export.csv"
