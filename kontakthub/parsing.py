"""Turn uploaded CSV and vCard files into import records."""

import csv
import logging
import re

import pydantic
import vobject

from . import schemas
from .errors import ValidationError

logger = logging.getLogger(__name__)

# Column header -> (section, key); section is "fields" or "address".
CSV_COLUMNS = {
    "Nachname": ("fields", "lastName"),
    "Name": ("fields", "lastName"),
    "Vorname": ("fields", "firstName"),
    "ZustellStrasse": ("address", "street"),
    "ZustellStraße": ("address", "street"),
    "Strasse": ("address", "street"),
    "Straße": ("address", "street"),
    "ZustellPLZ": ("address", "zip"),
    "PLZ": ("address", "zip"),
    "ZustellOrt": ("address", "city"),
    "Ort": ("address", "city"),
    "Titel": ("fields", "title"),
    "E-Mail1": ("fields", "email"),
    "Mail": ("fields", "email"),
    "Geburtstag": ("fields", "birthday"),
    "Telefon": ("fields", "phone"),
}


def gender_from_salutation(value: str) -> str:
    """Guess ``male``, ``female`` or ``diverse`` from a German salutation."""
    lowered = value.lower()
    if "herr" in lowered:
        return "male"
    if "frau" in lowered:
        return "female"
    return "diverse"


def _split_rows(text: str) -> list[list[str]]:
    lines = [line for line in text.splitlines() if line.strip()]
    if not lines:
        return []
    first = lines[0]
    for delimiter in (";", "\t", ","):
        if delimiter in first:
            return list(csv.reader(lines, delimiter=delimiter))
    return [re.split(r"\s{2,}", line.strip()) for line in lines]


def _to_record(data: dict) -> schemas.ContactCreate | None:
    fields = data["fields"]
    if not fields.get("firstName") and not fields.get("lastName"):
        return None
    try:
        return schemas.ContactCreate.model_validate(data)
    except pydantic.ValidationError as exc:
        logger.warning("Dropping unreadable record %s: %s", fields, exc)
        return None


def parse_csv(text: str) -> list[schemas.ContactCreate]:
    """
    Parse a contact list exported from a spreadsheet or address program.

    The delimiter is taken from the header line: semicolon, tab, comma,
    or else runs of two or more spaces. Rows without a first or last name
    are dropped.

    Args:
        text (str): File content.

    Returns:
        list[ContactCreate]: Parsed records.
    """
    rows = _split_rows(text.lstrip("\ufeff"))
    if len(rows) < 2:
        return []
    headers = [header.strip() for header in rows[0]]
    has_letter_salutation = "Briefanrede" in headers

    records = []
    for row in rows[1:]:
        fields: dict = {}
        address: dict = {}
        for index, header in enumerate(headers):
            value = row[index].strip() if index < len(row) else ""
            if not header or not value:
                continue
            if header in CSV_COLUMNS:
                section, key = CSV_COLUMNS[header]
                (address if section == "address" else fields)[key] = value
            elif header == "Briefanrede":
                fields["salutation"] = value
                fields["gender"] = gender_from_salutation(value)
            elif header == "Anrede" and not has_letter_salutation:
                fields["gender"] = gender_from_salutation(value)
        fields["address"] = address
        record = _to_record({"fields": fields})
        if record is not None:
            records.append(record)
    return records


def _first(card, name: str):
    for child in card.getChildren():
        if child.name.upper() == name:
            return child
    return None


def _text(value) -> str:
    if isinstance(value, list):
        value = " ".join(part for part in value if isinstance(part, str))
    return value.strip() if isinstance(value, str) else ""


def _vcard_record(card) -> schemas.ContactCreate | None:
    fields: dict = {}
    address: dict = {}
    if hasattr(card, "n"):
        n = card.n.value
        fields["lastName"] = _text(n.family)
        fields["firstName"] = _text(n.given)

    email = _first(card, "EMAIL")
    if email is not None and _text(email.value):
        fields["email"] = _text(email.value)
    tel = _first(card, "TEL")
    if tel is not None and _text(tel.value):
        fields["phone"] = _text(tel.value)
    adr = _first(card, "ADR")
    if adr is not None:
        value = adr.value
        address = {
            "street": _text(value.street),
            "city": _text(value.city),
            "zip": _text(value.code),
            "country": _text(value.country),
        }
    fields["address"] = address
    return _to_record({"fields": fields})


def parse_vcard(text: str) -> list[schemas.ContactCreate]:
    """
    Parse one or more vCards.

    Only the structured name, the first email, the first phone number and
    the first postal address are read. Cards without a name are dropped.

    Args:
        text (str): File content.

    Returns:
        list[ContactCreate]: Parsed records, empty if the text is not a
            readable vCard file.
    """
    try:
        cards = list(vobject.readComponents(text))
    except Exception as exc:
        logger.warning("Failed to parse vCard data: %s", exc)
        return []

    records = []
    for card in cards:
        record = _vcard_record(card)
        if record is not None:
            records.append(record)
    return records


def parse_upload(filename: str, content: bytes) -> list[schemas.ContactCreate]:
    """
    Parse an uploaded file by its extension.

    Raises:
        ValidationError: If the file type is not ``.csv`` or ``.vcf``.
    """
    text = content.decode("utf-8-sig", errors="replace")
    lowered = (filename or "").lower()
    if lowered.endswith(".csv") or lowered.endswith(".txt"):
        return parse_csv(text)
    if lowered.endswith(".vcf") or lowered.endswith(".vcard"):
        return parse_vcard(text)
    raise ValidationError(
        "Unsupported file type, expected .csv or .vcf", {"filename": filename}
    )
