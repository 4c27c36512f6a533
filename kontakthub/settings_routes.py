"""User preference routes for the KontaktHub API."""

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from . import crud
from .database import get_db

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("", response_model=Dict[str, Any])
def read_settings(db: Session = Depends(get_db)):
    """Return all settings, stored values merged over the defaults."""
    return crud.read_settings(db)


@router.put("", response_model=Dict[str, Any])
def write_settings(
    updates: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
):
    """
    Store the given settings.

    Keys missing from the request keep their current value.

    Args:
        updates (dict): Setting name to new value.
        db (Session): Database session.

    Returns:
        dict: All settings after the update.
    """
    return crud.write_settings(db, updates)


@router.get("/{key}", response_model=Dict[str, Any])
def read_setting(key: str, db: Session = Depends(get_db)):
    """
    Return a single setting as ``{key: value}``.

    Raises:
        NotFound: If the key is neither stored nor a default.
    """
    return {key: crud.read_setting(db, key)}
