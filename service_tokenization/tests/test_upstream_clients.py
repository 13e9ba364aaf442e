"""
Unit tests for the registry and driver clients.
"""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from shared.errors import ExternalServiceError
from shared.test_helpers import TokenizationDataFactory, json_response, request_json
from service_tokenization.app.adapters import HOME_ORG_UPDATING_MESSAGE, RegistryClient


class TestRegistryClient:
    """Test cases for RegistryClient."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [["org-1", "org-2"], {"storeIds": ["org-1", "org-2"]}])
    async def test_get_store_ids_accepts_both_shapes(self, registry_client, upstream, body):
        upstream.on("GET", "/v1/organizations/org-1/storeIds", json_response(body))

        assert await registry_client.get_store_ids("org-1") == ["org-1", "org-2"]

    @pytest.mark.asyncio
    async def test_get_store_ids_unexpected_payload(self, registry_client, upstream):
        upstream.on("GET", "/v1/organizations/org-1/storeIds", json_response({"unexpected": True}))

        with pytest.raises(ExternalServiceError):
            await registry_client.get_store_ids("org-1")

    @pytest.mark.asyncio
    async def test_non_2xx_carries_upstream_error_text(self, registry_client, upstream):
        upstream.on("GET", "/v1/organizations/org-1/storeIds", json_response({"error": "registry offline"}, 503))

        with pytest.raises(ExternalServiceError) as exc_info:
            await registry_client.get_store_ids("org-1")

        assert exc_info.value.upstream_status == 503
        assert exc_info.value.message == "registry: registry offline"

    @pytest.mark.asyncio
    async def test_transport_errors_are_retried_for_reads(self, registry_client, upstream):
        upstream.on(
            "GET", "/v1/organizations/org-1/storeIds",
            httpx.ConnectError("refused"),
            json_response(["org-1"])
        )

        with patch("shared.retry.asyncio.sleep", new_callable=AsyncMock):
            assert await registry_client.get_store_ids("org-1") == ["org-1"]

        assert len(upstream.calls("GET", "/v1/organizations/org-1/storeIds")) == 2

    @pytest.mark.asyncio
    async def test_transport_errors_exhaust_into_external_service_error(self, registry_client, upstream):
        upstream.on("GET", "/v1/organizations/org-1/storeIds", httpx.ConnectError("refused"))

        with patch("shared.retry.asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(ExternalServiceError) as exc_info:
                await registry_client.get_store_ids("org-1")

        assert exc_info.value.upstream_status is None
        assert exc_info.value.details["attempts"] == 3
        assert len(upstream.calls("GET", "/v1/organizations/org-1/storeIds")) == 3

    @pytest.mark.asyncio
    async def test_writes_are_not_retried(self, registry_client, upstream):
        upstream.on("POST", "/v1/staging/commit", httpx.ConnectError("refused"))

        with pytest.raises(ExternalServiceError):
            await registry_client.commit_staging()

        assert len(upstream.calls("POST", "/v1/staging/commit")) == 1

    @pytest.mark.asyncio
    async def test_get_unit_takes_first_record(self, registry_client, upstream):
        unit = TokenizationDataFactory.create_unit()
        upstream.on("GET", "/v1/units", json_response([unit]))

        assert await registry_client.get_unit("unit-1") == unit
        assert upstream.requests[0].url.params["warehouseUnitId"] == "unit-1"

    @pytest.mark.asyncio
    async def test_get_unit_missing(self, registry_client, upstream):
        upstream.on("GET", "/v1/units", json_response([]))

        with pytest.raises(ExternalServiceError):
            await registry_client.get_unit("unit-1")

    @pytest.mark.asyncio
    async def test_register_token_metadata_keys_by_asset_id(self, registry_client, upstream):
        token = TokenizationDataFactory.create_token("asset-1")
        upstream.on("POST", "/v1/organizations/metadata", json_response({"message": "ok"}))

        await registry_client.register_token_metadata("asset-1", token)

        body = request_json(upstream.requests[0])
        assert list(body) == ["asset-1"]
        assert json.loads(body["asset-1"]) == token

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body,expected", [
        ({"confirmed": True}, True),
        ({"record": {"confirmed": True}}, True),
        ({"confirmed": False}, False),
        ({}, False),
    ])
    async def test_is_staging_confirmed(self, registry_client, upstream, body, expected):
        upstream.on("GET", "/v1/staging/hasPendingTransactions", json_response(body))

        assert await registry_client.is_staging_confirmed() is expected

    def test_is_home_org_updating(self):
        assert RegistryClient.is_home_org_updating({"message": HOME_ORG_UPDATING_MESSAGE})
        assert not RegistryClient.is_home_org_updating({"message": "Home org updated."})

    @pytest.mark.asyncio
    async def test_base_url_read_per_call(self, registry_client, connected_store, upstream):
        upstream.on("POST", "/v1/staging/commit", json_response({}))
        connected_store.merge({"registry_host": "http://other-registry.test"})

        await registry_client.commit_staging()

        assert upstream.requests[0].url.host == "other-registry.test"

    @pytest.mark.asyncio
    async def test_invalid_json_is_an_upstream_error(self, registry_client, upstream):
        upstream.on("POST", "/v1/staging/commit", httpx.Response(200, content=b"<html>"))

        with pytest.raises(ExternalServiceError):
            await registry_client.commit_staging()

    @pytest.mark.asyncio
    async def test_empty_body_reads_as_none(self, registry_client, upstream):
        upstream.on("PUT", "/v1/units", httpx.Response(204))

        assert await registry_client.update_unit({"warehouseUnitId": "unit-1"}) is None


class TestDriverClient:
    """Test cases for DriverClient."""

    @pytest.mark.asyncio
    async def test_create_token_posts_payload(self, driver_client, upstream):
        response = TokenizationDataFactory.create_driver_token_response()
        upstream.on("POST", "/v1/tokens", json_response(response))

        result = await driver_client.create_token({"token": {}, "payment": {}})

        assert result == response
        assert request_json(upstream.requests[0]) == {"token": {}, "payment": {}}
        assert upstream.requests[0].url.host == "driver.test"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body,expected", [
        ({"confirmed": True}, True),
        ({"record": {"confirmed": True}}, True),
        ({"record": {"confirmed": False}}, False),
    ])
    async def test_is_transaction_confirmed(self, driver_client, upstream, body, expected):
        upstream.on("GET", "/v1/transactions/tx-1", json_response(body))

        assert await driver_client.is_transaction_confirmed("tx-1") is expected

    @pytest.mark.asyncio
    async def test_unexpected_status_payload_raises_value_error(self, driver_client, upstream):
        upstream.on("GET", "/v1/transactions/tx-1", json_response(["not", "a", "record"]))

        with pytest.raises(ValueError):
            await driver_client.is_transaction_confirmed("tx-1")

    @pytest.mark.asyncio
    async def test_parse_detokenization_sends_content_as_query(self, driver_client, upstream):
        upstream.on("GET", "/v1/tokens/parse-detokenization", json_response({"amount": 10}))

        result = await driver_client.parse_detokenization("detok1abc")

        assert result == {"amount": 10}
        assert upstream.requests[0].url.params["content"] == "detok1abc"
