"""
Shared HTTP plumbing for third-party integration clients.

Each client is built from an integration row with *plaintext* tokens (see
`repository.decrypt_credentials`) and talks to its provider over httpx.
"""

from __future__ import annotations

import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 30.0


# Provider failures are explicit and separable from other runtime errors.
class IntegrationError(RuntimeError):
    pass


class BaseIntegration(ABC):
    """
    Subclasses set `type`, `base_url` and `actions`, and implement `ping` and
    `get_recent_data`.
    """

    type: ClassVar[str] = ""
    base_url: ClassVar[str] = ""
    # Action name -> method name, for workflow steps and chat function calls.
    actions: ClassVar[dict[str, str]] = {}

    def __init__(self, integration: dict, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.integration = integration
        self.access_token = str(integration.get("access_token") or "")
        self.refresh_token = integration.get("refresh_token")
        self._transport = transport
        if not self.access_token:
            raise IntegrationError(f"{self.type} integration has no access token.")

    @property
    def can_refresh(self) -> bool:
        return False

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}

    def _extra_headers(self) -> dict[str, str]:
        return {}

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        headers = {**self._auth_headers(), **self._extra_headers()}
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=DEFAULT_TIMEOUT_S,
                transport=self._transport,
            ) as client:
                return await client.request(method, path, params=params, json=json, headers=headers)
        except httpx.HTTPError as exc:
            raise IntegrationError(f"{self.type} request failed: {exc}") from exc

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> dict[str, Any] | None:
        resp = await self._send(method, path, params=params, json=json)

        if resp.status_code == 401 and self.can_refresh:
            logger.info("integration_token_refresh type=%s id=%s", self.type, self.integration.get("id"))
            await self.refresh_access_token()
            resp = await self._send(method, path, params=params, json=json)

        if resp.status_code >= 400:
            # Avoid dumping huge bodies; include a small snippet.
            raise IntegrationError(f"{self.type} request failed: {resp.status_code} {resp.text[:300]}")

        if resp.status_code == 204 or not resp.content:
            return None
        try:
            data = resp.json()
        except ValueError as exc:
            raise IntegrationError(f"{self.type} returned a non-JSON response: {resp.text[:100]}") from exc
        if not isinstance(data, dict):
            raise IntegrationError(f"{self.type} returned an unexpected response shape.")
        return data

    @abstractmethod
    async def ping(self) -> None:
        """
        Cheapest authenticated call; raises IntegrationError when the token is unusable.
        """

    async def test_connection(self) -> bool:
        try:
            await self.ping()
        except IntegrationError as exc:
            logger.warning("integration_test_failed type=%s error=%s", self.type, exc)
            return False
        return True

    async def refresh_access_token(self) -> str:
        # Most token-based providers issue non-expiring tokens.
        return self.access_token

    @abstractmethod
    async def get_recent_data(self) -> list[Any]:
        """
        Recent items for the dashboard and the integration data endpoint.
        """

    async def execute_action(self, action: str, params: dict[str, Any] | None = None) -> Any:
        method_name = self.actions.get(action)
        if method_name is None:
            raise IntegrationError(f"Unsupported {self.type} action: {action}")
        method = getattr(self, method_name)
        kwargs = dict(params or {})
        try:
            inspect.signature(method).bind(**kwargs)
        except TypeError as exc:
            raise IntegrationError(f"Invalid parameters for {action}: {exc}") from exc
        return await method(**kwargs)
