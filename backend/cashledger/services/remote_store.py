# Overview: HTTP client for the upstream ledger event store used by the outbox reconciler.

from __future__ import annotations

import httpx


class RemoteStoreError(Exception):
    """The remote store could not be reached or refused the request."""


class RemoteEventStore:
    """
    Thin httpx wrapper around the remote event store API.

    - POST {base}/events        body: one event payload; 200/201/409 = stored
    - GET  {base}/events?register_id=N -> {"events": [...]}

    409 means the remote already holds that event_uid, which is as good as
    an acknowledgement.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: float = 5.0,
        transport: httpx.BaseTransport | None = None,
    ):
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(cls, config) -> "RemoteEventStore | None":
        url = config.get("REMOTE_STORE_URL")
        if not url:
            return None
        return cls(
            url,
            token=config.get("REMOTE_STORE_TOKEN"),
            timeout=config.get("REMOTE_STORE_TIMEOUT", 5.0),
        )

    def append_event(self, payload: dict) -> None:
        try:
            response = self._client.post("/events", json=payload)
        except httpx.HTTPError as exc:
            raise RemoteStoreError(f"Remote store unreachable: {exc}") from exc

        if response.status_code in (200, 201, 409):
            return
        raise RemoteStoreError(f"Remote store rejected event {payload.get('event_uid')}: HTTP {response.status_code}")

    def list_events(self, register_id: int) -> list[dict]:
        try:
            response = self._client.get("/events", params={"register_id": register_id})
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            raise RemoteStoreError(f"Could not list remote events: {exc}") from exc
        except ValueError as exc:
            raise RemoteStoreError("Remote store returned invalid JSON") from exc
        return list(data.get("events", []))

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()
