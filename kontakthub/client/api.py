"""HTTP client for the KontaktHub REST API."""

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class ApiError(RuntimeError):
    """A request failed.

    ``status_code`` is 0 when the server could not be reached at all.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details


def _error_from_response(response: httpx.Response) -> ApiError:
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        message = payload.get("message") or payload.get("error")
        details = payload.get("details")
        if isinstance(message, str) and message.strip():
            return ApiError(
                message,
                response.status_code,
                details if isinstance(details, dict) else None,
            )

    text = response.text.strip()
    return ApiError(text[:200] or "unknown error", response.status_code)


class KontaktHubApi:
    """
    Thin wrapper around every KontaktHub endpoint.

    Responses are returned as decoded JSON; failures raise
    :class:`ApiError`.

    Args:
        http (httpx.Client): Client pointed at the server's base URL.
        prefix (str): Path prefix of the API routes.
    """

    def __init__(self, http: httpx.Client, prefix: str = "/api/v1") -> None:
        self._http = http
        self._prefix = prefix.rstrip("/")

    def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{self._prefix}{path}"
        try:
            response = self._http.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise ApiError(f"Server not reachable: {exc}") from exc
        if response.status_code < 200 or response.status_code >= 300:
            raise _error_from_response(response)
        return response

    def _json(self, method: str, path: str, **kwargs) -> Any:
        response = self._send(method, path, **kwargs)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ApiError(
                "Invalid JSON payload", response.status_code
            ) from exc

    # Health

    def health(self) -> dict:
        return self._json("GET", "/health")

    # Contacts

    def list_contacts(self, **params) -> list[dict]:
        return self._json("GET", "/contacts", params=params)

    def get_contact(self, contact_id: str) -> dict:
        return self._json("GET", f"/contacts/{contact_id}")

    def create_contact(self, data: dict) -> dict:
        return self._json("POST", "/contacts", json=data)

    def update_contact(self, contact_id: str, data: dict) -> dict:
        return self._json("PUT", f"/contacts/{contact_id}", json=data)

    def delete_contact(self, contact_id: str) -> None:
        self._json("DELETE", f"/contacts/{contact_id}")

    # Groups

    def list_groups(self, **params) -> list[dict]:
        return self._json("GET", "/groups", params=params)

    def get_group(self, group_id: str) -> dict:
        return self._json("GET", f"/groups/{group_id}")

    def create_group(self, data: dict) -> dict:
        return self._json("POST", "/groups", json=data)

    def update_group(self, group_id: str, data: dict) -> dict:
        return self._json("PUT", f"/groups/{group_id}", json=data)

    def delete_group(self, group_id: str) -> None:
        self._json("DELETE", f"/groups/{group_id}")

    def add_group_member(self, group_id: str, contact_id: str) -> dict:
        return self._json("POST", f"/groups/{group_id}/contacts/{contact_id}")

    def remove_group_member(self, group_id: str, contact_id: str) -> dict:
        return self._json("DELETE", f"/groups/{group_id}/contacts/{contact_id}")

    def export_group(self, group_id: str) -> str:
        return self._send("GET", f"/groups/{group_id}/export").text

    # Events

    def list_events(self, **params) -> list[dict]:
        return self._json("GET", "/events", params=params)

    def get_event(self, event_id: str) -> dict:
        return self._json("GET", f"/events/{event_id}")

    def create_event(self, data: dict) -> dict:
        return self._json("POST", "/events", json=data)

    def update_event(self, event_id: str, data: dict) -> dict:
        return self._json("PUT", f"/events/{event_id}", json=data)

    def delete_event(self, event_id: str) -> None:
        self._json("DELETE", f"/events/{event_id}")

    def invite_group(self, event_id: str, group_id: str) -> dict:
        return self._json("POST", f"/events/{event_id}/groups/{group_id}")

    def uninvite_group(self, event_id: str, group_id: str) -> dict:
        return self._json("DELETE", f"/events/{event_id}/groups/{group_id}")

    def invite_contact(self, event_id: str, contact_id: str) -> dict:
        return self._json("POST", f"/events/{event_id}/contacts/{contact_id}")

    def uninvite_contact(self, event_id: str, contact_id: str) -> dict:
        return self._json("DELETE", f"/events/{event_id}/contacts/{contact_id}")

    def get_attendees(self, event_id: str) -> list[dict]:
        return self._json("GET", f"/events/{event_id}/attendees")

    def export_event(self, event_id: str) -> str:
        return self._send("GET", f"/events/{event_id}/export").text

    # Settings

    def get_settings(self) -> dict:
        return self._json("GET", "/settings")

    def update_settings(self, updates: dict) -> dict:
        return self._json("PUT", "/settings", json=updates)

    def get_setting(self, key: str) -> Any:
        return self._json("GET", f"/settings/{key}")[key]

    # Imports

    def start_import(self, data: dict) -> dict:
        return self._json("POST", "/imports", json=data)

    def get_import(self, import_id: str) -> dict:
        return self._json("GET", f"/imports/{import_id}")

    def resolve_import(self, import_id: str, resolution: dict) -> dict:
        return self._json("POST", f"/imports/{import_id}/resolution", json=resolution)

    def parse_file(self, filename: str, content: bytes) -> list[dict]:
        return self._json("POST", "/imports/parse", files={"file": (filename, content)})
