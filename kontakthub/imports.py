"""Contact import routes for the KontaktHub API.

An import is started with ``POST /imports``. When a record duplicates an
existing contact the session stops in state ``awaiting_decision`` and the
client answers through ``POST /imports/{id}/resolution``.
"""

from typing import List

from fastapi import APIRouter, Depends, File, Request, UploadFile
from sqlalchemy.orm import Session

from . import parsing, schemas
from .core import Settings, get_settings
from .database import get_db
from .importer import ImportRegistry

router = APIRouter(prefix="/imports", tags=["imports"])


def get_import_registry(request: Request) -> ImportRegistry:
    """Return the import registry of the running application."""
    return request.app.state.imports


@router.post("", response_model=schemas.ImportStatusOut, status_code=201)
def start_import(
    request_in: schemas.ImportRequest,
    db: Session = Depends(get_db),
    registry: ImportRegistry = Depends(get_import_registry),
    settings: Settings = Depends(get_settings),
):
    """
    Start importing a batch of contacts.

    Records without a duplicate are inserted right away. The response
    either reports the finished import or carries the first merge
    proposal.

    Args:
        request_in (ImportRequest): Records and target group.
        db (Session): Database session.
        registry (ImportRegistry): Session store.
        settings (Settings): Application settings.

    Raises:
        NotFound: If the target group does not exist.

    Returns:
        ImportStatusOut: Session status.
    """
    session = registry.start(db, request_in, settings.DUPLICATE_MATCH_POLICY)
    return session.status(db)


@router.post("/parse", response_model=List[schemas.ContactCreate])
async def parse_file(file: UploadFile = File(...)):
    """
    Parse an uploaded ``.csv`` or ``.vcf`` file into import records.

    Nothing is stored; the result can be sent to ``POST /imports``.

    Raises:
        ValidationError: If the file type is not supported.
    """
    content = await file.read()
    return parsing.parse_upload(file.filename or "", content)


@router.get("/{import_id}", response_model=schemas.ImportStatusOut)
def get_import(
    import_id: str,
    db: Session = Depends(get_db),
    registry: ImportRegistry = Depends(get_import_registry),
):
    """
    Return the status of an import.

    A proposal that waited longer than the decision timeout is skipped,
    and one whose duplicate was deleted is matched again, before the
    status is built.

    Raises:
        NotFound: If the import is unknown or expired.
    """
    session = registry.get(import_id)
    session.expire_pending(db)
    return session.status(db)


@router.post("/{import_id}/resolution", response_model=schemas.ImportStatusOut)
def resolve_import(
    import_id: str,
    resolution: schemas.MergeResolution,
    db: Session = Depends(get_db),
    registry: ImportRegistry = Depends(get_import_registry),
):
    """
    Merge or skip the pending duplicate and continue the import.

    Args:
        import_id (str): Import identifier.
        resolution (MergeResolution): Decision and per-field choices.
        db (Session): Database session.
        registry (ImportRegistry): Session store.

    Raises:
        NotFound: If the import is unknown.
        ConstraintViolation: If no decision is pending, the proposal was
            dropped meanwhile, or ``recordIndex`` names another record.
        ValidationError: If a choice names a field without a conflict.

    Returns:
        ImportStatusOut: Session status after the decision.
    """
    session = registry.get(import_id)
    session.resolve(db, resolution)
    return session.status(db)
