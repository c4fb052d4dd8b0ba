"""Remote ledger store over a Realtime-Database style REST API."""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

import requests

from .errors import RemoteStoreError

logger = logging.getLogger(__name__)


class RemoteStore(Protocol):
    def save(self, user_id: str, payload: dict[str, Any]) -> None: ...

    def load(self, user_id: str) -> Optional[dict[str, Any]]: ...


class HttpRemoteStore:
    """Stores one whole-ledger snapshot per user at ``users/<id>/ledger.json``."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        auth_token: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.auth_token = auth_token
        self.session = session or requests.Session()

    def _url(self, user_id: str) -> str:
        return f"{self.base_url}/users/{user_id}/ledger.json"

    def _params(self) -> dict[str, str]:
        return {"auth": self.auth_token} if self.auth_token else {}

    def save(self, user_id: str, payload: dict[str, Any]) -> None:
        try:
            r = self.session.put(
                self._url(user_id), json=payload, params=self._params(), timeout=self.timeout
            )
            r.raise_for_status()
        except requests.RequestException as exc:
            raise RemoteStoreError(f"Remote save failed: {exc}") from exc
        logger.debug("Remote ledger saved for user %s", user_id)

    def load(self, user_id: str) -> Optional[dict[str, Any]]:
        try:
            r = self.session.get(self._url(user_id), params=self._params(), timeout=self.timeout)
            r.raise_for_status()
            data = r.json()
        except (requests.RequestException, ValueError) as exc:
            raise RemoteStoreError(f"Remote load failed: {exc}") from exc
        if data is None:
            return None
        if not isinstance(data, dict):
            raise RemoteStoreError(f"Unexpected remote payload type {type(data).__name__}")
        return data
