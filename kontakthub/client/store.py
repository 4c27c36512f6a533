"""Client-side cache of the KontaktHub data with change notifications.

The store never patches relationships locally. Every change goes to the
server first; afterwards every collection the server may have touched is
fetched again and subscribers are notified once per refreshed topic.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from .api import ApiError, KontaktHubApi

logger = logging.getLogger(__name__)


class Topic(str, Enum):
    CONTACTS = "contacts"
    GROUPS = "groups"
    EVENTS = "events"
    SETTINGS = "settings"
    LOADED = "loaded"
    ERROR = "error"


@dataclass(frozen=True)
class CollectionChanged:
    """A collection was fetched again."""

    topic: Topic
    items: list[dict]


@dataclass(frozen=True)
class SettingsChanged:
    settings: dict[str, Any]


@dataclass(frozen=True)
class Loaded:
    """Initial load finished."""

    contacts: int
    groups: int
    events: int
    health: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ErrorOccurred:
    message: str
    status_code: int = 0
    details: dict[str, Any] | None = None


Subscriber = Callable[[Any], None]


class EventBus:
    """Synchronous publish/subscribe dispatcher keyed by :class:`Topic`."""

    def __init__(self) -> None:
        self._subscribers: dict[Topic, list[Subscriber]] = {}

    def subscribe(self, topic: Topic, callback: Subscriber) -> Callable[[], None]:
        """
        Register a callback for a topic.

        Returns:
            Callable[[], None]: Removes the subscription when called.
        """
        self._subscribers.setdefault(topic, []).append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(topic, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def publish(self, topic: Topic, payload: Any) -> None:
        """Deliver a payload to every subscriber of a topic."""
        for callback in list(self._subscribers.get(topic, [])):
            try:
                callback(payload)
            except Exception:
                logger.exception("Subscriber for %s failed", topic.value)


# Collections the server may change per kind of write.
AFFECTED_BY = {
    "contact": (Topic.CONTACTS, Topic.GROUPS),
    "contact_delete": (Topic.CONTACTS, Topic.GROUPS, Topic.EVENTS),
    "group": (Topic.GROUPS, Topic.CONTACTS),
    "group_delete": (Topic.GROUPS, Topic.CONTACTS, Topic.EVENTS),
    "event": (Topic.EVENTS,),
    "import": (Topic.CONTACTS, Topic.GROUPS),
}


class ClientStore:
    """
    Cached projection of contacts, groups, events and settings.

    Args:
        api (KontaktHubApi): Server access.
        bus (EventBus): Receives change notifications.
    """

    def __init__(self, api: KontaktHubApi, bus: EventBus) -> None:
        self.api = api
        self.bus = bus
        self._contacts: dict[str, dict] = {}
        self._groups: dict[str, dict] = {}
        self._events: dict[str, dict] = {}
        self._settings: dict[str, Any] = {}

    # Loading

    def _fetch(self, topic: Topic) -> None:
        if topic is Topic.CONTACTS:
            self._contacts = {c["id"]: c for c in self.api.list_contacts()}
            items = list(self._contacts.values())
        elif topic is Topic.GROUPS:
            self._groups = {g["id"]: g for g in self.api.list_groups()}
            items = list(self._groups.values())
        elif topic is Topic.EVENTS:
            self._events = {e["id"]: e for e in self.api.list_events()}
            items = list(self._events.values())
        else:
            self._settings = self.api.get_settings()
            self.bus.publish(Topic.SETTINGS, SettingsChanged(dict(self._settings)))
            return
        self.bus.publish(topic, CollectionChanged(topic, items))

    def _report(self, exc: ApiError) -> None:
        logger.warning("KontaktHub request failed: %s", exc.message)
        self.bus.publish(
            Topic.ERROR, ErrorOccurred(exc.message, exc.status_code, exc.details)
        )

    def load(self) -> bool:
        """
        Fetch everything from the server.

        Returns:
            bool: ``False`` if the server could not be read; an ``error``
                notification has been published in that case.
        """
        try:
            health = self.api.health()
            for topic in (Topic.CONTACTS, Topic.GROUPS, Topic.EVENTS, Topic.SETTINGS):
                self._fetch(topic)
        except ApiError as exc:
            self._report(exc)
            return False
        self.bus.publish(
            Topic.LOADED,
            Loaded(
                contacts=len(self._contacts),
                groups=len(self._groups),
                events=len(self._events),
                health=health or {},
            ),
        )
        return True

    def _write(self, affected: tuple[Topic, ...], call: Callable[[], Any]) -> Any:
        try:
            result = call()
            for topic in affected:
                self._fetch(topic)
        except ApiError as exc:
            self._report(exc)
            raise
        return result

    # Read accessors

    @property
    def contacts(self) -> list[dict]:
        return list(self._contacts.values())

    @property
    def groups(self) -> list[dict]:
        return list(self._groups.values())

    @property
    def events(self) -> list[dict]:
        return list(self._events.values())

    @property
    def settings(self) -> dict[str, Any]:
        return dict(self._settings)

    def get_contact(self, contact_id: str) -> dict | None:
        return self._contacts.get(contact_id)

    def get_group(self, group_id: str) -> dict | None:
        return self._groups.get(group_id)

    def get_event(self, event_id: str) -> dict | None:
        return self._events.get(event_id)

    def group_members(self, group_id: str) -> list[dict]:
        """Cached contacts listed as members of a group."""
        group = self._groups.get(group_id)
        if group is None:
            return []
        return [
            self._contacts[cid] for cid in group["contactIds"] if cid in self._contacts
        ]

    def event_attendees(self, event_id: str) -> list[dict]:
        """Cached attendees: invited group members, then invited contacts."""
        event = self._events.get(event_id)
        if event is None:
            return []
        ids: dict[str, None] = {}
        for group_id in event["attendees"]["groupIds"]:
            for contact in self.group_members(group_id):
                ids.setdefault(contact["id"])
        for contact_id in event["attendees"]["contactIds"]:
            ids.setdefault(contact_id)
        return [self._contacts[cid] for cid in ids if cid in self._contacts]

    # Contacts

    def create_contact(self, data: dict) -> dict:
        return self._write(AFFECTED_BY["contact"], lambda: self.api.create_contact(data))

    def update_contact(self, contact_id: str, data: dict) -> dict:
        return self._write(
            AFFECTED_BY["contact"], lambda: self.api.update_contact(contact_id, data)
        )

    def delete_contact(self, contact_id: str) -> None:
        self._write(
            AFFECTED_BY["contact_delete"], lambda: self.api.delete_contact(contact_id)
        )

    # Groups

    def create_group(self, data: dict) -> dict:
        return self._write(AFFECTED_BY["group"], lambda: self.api.create_group(data))

    def update_group(self, group_id: str, data: dict) -> dict:
        return self._write(
            AFFECTED_BY["group"], lambda: self.api.update_group(group_id, data)
        )

    def delete_group(self, group_id: str) -> None:
        self._write(AFFECTED_BY["group_delete"], lambda: self.api.delete_group(group_id))

    def add_to_group(self, group_id: str, contact_id: str) -> dict:
        return self._write(
            AFFECTED_BY["group"],
            lambda: self.api.add_group_member(group_id, contact_id),
        )

    def remove_from_group(self, group_id: str, contact_id: str) -> dict:
        return self._write(
            AFFECTED_BY["group"],
            lambda: self.api.remove_group_member(group_id, contact_id),
        )

    # Events

    def create_event(self, data: dict) -> dict:
        return self._write(AFFECTED_BY["event"], lambda: self.api.create_event(data))

    def update_event(self, event_id: str, data: dict) -> dict:
        return self._write(
            AFFECTED_BY["event"], lambda: self.api.update_event(event_id, data)
        )

    def delete_event(self, event_id: str) -> None:
        self._write(AFFECTED_BY["event"], lambda: self.api.delete_event(event_id))

    def invite_group(self, event_id: str, group_id: str) -> dict:
        return self._write(
            AFFECTED_BY["event"], lambda: self.api.invite_group(event_id, group_id)
        )

    def uninvite_group(self, event_id: str, group_id: str) -> dict:
        return self._write(
            AFFECTED_BY["event"], lambda: self.api.uninvite_group(event_id, group_id)
        )

    def invite_contact(self, event_id: str, contact_id: str) -> dict:
        return self._write(
            AFFECTED_BY["event"], lambda: self.api.invite_contact(event_id, contact_id)
        )

    def uninvite_contact(self, event_id: str, contact_id: str) -> dict:
        return self._write(
            AFFECTED_BY["event"],
            lambda: self.api.uninvite_contact(event_id, contact_id),
        )

    # Settings

    def update_settings(self, updates: dict[str, Any]) -> dict[str, Any]:
        return self._write(
            (Topic.SETTINGS,), lambda: self.api.update_settings(updates)
        )

    # Imports

    def start_import(self, data: dict) -> dict:
        """Start an import; records without a duplicate are stored at once."""
        return self._write(AFFECTED_BY["import"], lambda: self.api.start_import(data))

    def resolve_import(self, import_id: str, resolution: dict) -> dict:
        """Answer a merge proposal of a running import."""
        return self._write(
            AFFECTED_BY["import"],
            lambda: self.api.resolve_import(import_id, resolution),
        )
