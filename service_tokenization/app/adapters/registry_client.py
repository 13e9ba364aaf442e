"""
Registry (warehouse) service client.
"""

from typing import Any, Dict, List
import json

from shared.errors import ExternalServiceError
from .base import UpstreamClient, confirmed_flag

HOME_ORG_UPDATING_MESSAGE = "Home org currently being updated, will be completed soon."


class RegistryClient(UpstreamClient):
    """Client for the registry's organization, unit and staging endpoints."""

    service_name = "registry"

    def base_url(self) -> str:
        return self.identity_store.get().registry_host

    async def get_store_ids(self, org_uid: str) -> List[str]:
        """List the data store ids the registry knows for an organization."""
        body = await self._request("GET", f"/v1/organizations/{org_uid}/storeIds", retry=True)
        if isinstance(body, dict):
            body = body.get("storeIds")
        if not isinstance(body, list):
            raise ExternalServiceError(
                service=self.service_name,
                message="Store id lookup returned an unexpected payload",
                details={"org_uid": org_uid}
            )
        return [str(store_id) for store_id in body]

    async def get_unit(self, warehouse_unit_id: str) -> Dict[str, Any]:
        """Fetch a single unit record by its warehouse id."""
        body = await self._request("GET", "/v1/units", params={"warehouseUnitId": warehouse_unit_id})
        if isinstance(body, list):
            body = body[0] if body else None
        if not isinstance(body, dict):
            raise ExternalServiceError(
                service=self.service_name,
                message=f"Unit {warehouse_unit_id} not found",
                details={"warehouse_unit_id": warehouse_unit_id}
            )
        return body

    async def update_unit(self, unit: Dict[str, Any]) -> Any:
        return await self._request("PUT", "/v1/units", json=unit)

    async def register_token_metadata(self, asset_id: str, token: Dict[str, Any]) -> Dict[str, Any]:
        """Store the token descriptor as home org metadata keyed by asset id."""
        body = await self._request("POST", "/v1/organizations/metadata", json={asset_id: json.dumps(token)})
        return body if isinstance(body, dict) else {}

    async def commit_staging(self) -> Any:
        return await self._request("POST", "/v1/staging/commit")

    async def is_staging_confirmed(self) -> bool:
        """Whether the registry reports its pending staging writes confirmed."""
        body = await self._request("GET", "/v1/staging/hasPendingTransactions")
        return confirmed_flag(body)

    @staticmethod
    def is_home_org_updating(response: Dict[str, Any]) -> bool:
        return response.get("message") == HOME_ORG_UPDATING_MESSAGE
