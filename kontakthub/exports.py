"""Mail merge export of contact lists."""

import csv
import io
from typing import Iterable

from . import models
from .errors import ValidationError

MAIL_MERGE_HEADER = ("Anrede", "Vorname", "Nachname", "Straße", "PLZ", "Ort", "Land")


def letter_salutation(contact: models.Contact) -> str:
    """Return the formal German letter salutation for a contact."""
    last_name = contact.last_name or ""
    if contact.gender == "male":
        return f"Sehr geehrter Herr {last_name}".strip()
    if contact.gender == "female":
        return f"Sehr geehrte Frau {last_name}".strip()
    return f"Sehr geehrte/r {last_name}".strip()


def mail_merge_csv(contacts: Iterable[models.Contact]) -> str:
    """
    Render contacts as a semicolon separated CSV for word processors.

    The result starts with a byte order mark so spreadsheet programs pick
    up UTF-8.

    Args:
        contacts (Iterable[Contact]): Contacts to export.

    Raises:
        ValidationError: If there is nothing to export.

    Returns:
        str: CSV document.
    """
    contacts = list(contacts)
    if not contacts:
        raise ValidationError("No contacts to export")

    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=";", lineterminator="\n")
    writer.writerow(MAIL_MERGE_HEADER)
    for contact in contacts:
        writer.writerow(
            (
                letter_salutation(contact),
                contact.first_name or "",
                contact.last_name or "",
                contact.street or "",
                contact.zip or "",
                contact.city or "",
                contact.country or "",
            )
        )
    return "\ufeff" + buffer.getvalue()


def export_filename(name: str) -> str:
    """Build a download file name such as ``serienbrief_vorstand.csv``."""
    cleaned = "".join(
        ch if ch.isascii() and ch.isalnum() else "_" for ch in name.lower()
    ).strip("_")
    return f"serienbrief_{cleaned or 'export'}.csv"
