"""Entitlement status check against the external auth service."""

from __future__ import annotations

import httpx
from loguru import logger

from scanchat.config.schema import AuthConfig
from scanchat.errors import AuthRejectedError


class StatusChecker:
    """POST the caller's bearer token and requested model to the status endpoint."""

    def __init__(self, settings: AuthConfig, client: httpx.AsyncClient | None = None):
        self.settings = settings
        self._client = client

    @property
    def enabled(self) -> bool:
        return bool(self.settings.status_url) and not self.settings.skip_status_check

    async def check(self, authorization: str, model: str) -> None:
        """Raise AuthRejectedError unless the status endpoint answers 2xx."""
        if not self.enabled:
            return
        headers = {"Authorization": authorization} if authorization else {}
        payload = {"model": model}
        try:
            if self._client is not None:
                response = await self._client.post(self.settings.status_url, json=payload, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.settings.timeout_s) as client:
                    response = await client.post(self.settings.status_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Status check failed: {e}")
            raise AuthRejectedError(503, "Authentication service unavailable") from e

        if response.is_success:
            return
        logger.info(f"Status check rejected request for {model}: {response.status_code}")
        raise AuthRejectedError(response.status_code, response.text)
