"""Python client for the KontaktHub API with a local state cache."""

from .api import ApiError, KontaktHubApi
from .store import (
    ClientStore,
    CollectionChanged,
    ErrorOccurred,
    EventBus,
    Loaded,
    SettingsChanged,
    Topic,
)

__all__ = [
    "ApiError",
    "ClientStore",
    "CollectionChanged",
    "ErrorOccurred",
    "EventBus",
    "KontaktHubApi",
    "Loaded",
    "SettingsChanged",
    "Topic",
]
