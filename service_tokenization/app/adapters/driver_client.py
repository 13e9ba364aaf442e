"""
Token driver service client.
"""

from typing import Any, Dict

from .base import UpstreamClient, confirmed_flag


class DriverClient(UpstreamClient):
    """Client for token creation, transaction status and detokenization parsing."""

    service_name = "driver"

    def base_url(self) -> str:
        return self.identity_store.get().driver_host

    async def create_token(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        body = await self._request("POST", "/v1/tokens", json=payload)
        return body if isinstance(body, dict) else {}

    async def is_transaction_confirmed(self, transaction_id: str) -> bool:
        body = await self._request("GET", f"/v1/transactions/{transaction_id}")
        return confirmed_flag(body)

    async def parse_detokenization(self, content: str) -> Any:
        """Ask the driver to parse a decoded detokenization payload."""
        return await self._request(
            "GET",
            "/v1/tokens/parse-detokenization",
            params={"content": content},
            retry=True
        )
