"""
Common request handling for the registry and driver clients.
"""

from typing import Any
import httpx

from shared.logging import get_logger
from shared.errors import ExternalServiceError
from shared.retry import retry_on_exception, RetryConfig, RetryError
from service_tokenization.app.identity import IdentityStore


def confirmed_flag(body: Any) -> bool:
    """Read a ``confirmed`` flag at the top level or under ``record``."""
    if not isinstance(body, dict):
        raise ValueError(f"Unexpected status payload: {body!r}")
    if body.get("confirmed") is True:
        return True
    record = body.get("record")
    return isinstance(record, dict) and record.get("confirmed") is True


class UpstreamClient:
    """Base class for clients whose host comes from the identity store."""

    service_name = "upstream"

    def __init__(self, identity_store: IdentityStore, timeout: float = 30.0):
        self.identity_store = identity_store
        self.timeout = timeout
        self.logger = get_logger(f"tokenization.{self.service_name}_client")

    def base_url(self) -> str:
        raise NotImplementedError

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        async with httpx.AsyncClient(base_url=self.base_url(), timeout=self.timeout) as client:
            return await client.request(method, path, **kwargs)

    @retry_on_exception((httpx.TransportError,), config=RetryConfig(max_attempts=3, base_delay=0.5, max_delay=2.0))
    async def _send_with_retry(self, method: str, path: str, **kwargs) -> httpx.Response:
        return await self._send(method, path, **kwargs)

    async def _request(self, method: str, path: str, *, retry: bool = False, **kwargs) -> Any:
        """Send a request and decode its JSON body.

        Transport failures, non-2xx statuses and undecodable bodies all raise
        ExternalServiceError. ``retry`` is only meant for idempotent reads.
        """
        try:
            if retry:
                response = await self._send_with_retry(method, path, **kwargs)
            else:
                response = await self._send(method, path, **kwargs)
        except RetryError as e:
            self.logger.error("Upstream unreachable", method=method, path=path, error=str(e.last_exception))
            raise ExternalServiceError(
                service=self.service_name,
                message=str(e.last_exception),
                details={"method": method, "path": path, "attempts": e.attempts}
            ) from e
        except httpx.HTTPError as e:
            self.logger.error("Upstream unreachable", method=method, path=path, error=str(e))
            raise ExternalServiceError(
                service=self.service_name,
                message=str(e) or e.__class__.__name__,
                details={"method": method, "path": path}
            ) from e

        if not response.is_success:
            self.logger.warning(
                "Upstream request failed",
                method=method,
                path=path,
                status_code=response.status_code,
                response=response.text
            )
            raise ExternalServiceError(
                service=self.service_name,
                message=self._error_message(response),
                details={"status_code": response.status_code, "body": response.text},
                status_code=response.status_code
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ExternalServiceError(
                service=self.service_name,
                message=f"Invalid JSON in response to {method} {path}",
                details={"body": response.text}
            ) from e

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        """Prefer the upstream's own error text over the bare status."""
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            for key in ("error", "message"):
                if body.get(key):
                    return str(body[key])
        return f"Unexpected status {response.status_code}"
