"""
Org connection handshake: adopt an organization as the home org.
"""

from typing import Optional

from shared.errors import ExternalServiceError, GatewayException, NotFoundError
from shared.logging import get_logger
from service_tokenization.app.adapters import RegistryClient
from service_tokenization.app.identity import (
    ConfigPersistenceError,
    IdentityConfiguration,
    IdentityStore,
    YamlConfigPersistence,
    to_persisted,
)

CONNECT_FAILED_MESSAGE = "Could not connect to organization."
ORG_NOT_FOUND_MESSAGE = "Not found."


class OrgLookupError(GatewayException):
    """Store id lookup failed, so membership could not be decided."""

    def __init__(self, error: str):
        super().__init__("ORG_LOOKUP_FAILED", CONNECT_FAILED_MESSAGE, error=error)


class OrgConnectionHandshake:
    """Validates a candidate org against the registry and commits it."""

    def __init__(self, identity_store: IdentityStore, registry_client: RegistryClient,
                 persistence: Optional[YamlConfigPersistence] = None):
        self.identity_store = identity_store
        self.registry_client = registry_client
        self.persistence = persistence
        self.logger = get_logger("tokenization.handshake")

    async def connect(self, org_uid: str) -> IdentityConfiguration:
        """Set ``org_uid`` as home org if the registry lists it among its store ids."""
        try:
            store_ids = await self.registry_client.get_store_ids(org_uid)
        except ExternalServiceError as e:
            self.logger.warning("Store id lookup failed", org_uid=org_uid, error=e.message)
            raise OrgLookupError(e.message) from e

        if org_uid not in store_ids:
            self.logger.info("Organization not among registry store ids", org_uid=org_uid)
            raise NotFoundError(ORG_NOT_FOUND_MESSAGE, details={"orgUid": org_uid})

        partial = {"home_org": org_uid}
        identity = self.identity_store.merge(partial)
        self.logger.info("Home organization connected", org_uid=org_uid)

        if self.persistence is not None:
            try:
                self.persistence.update_config(to_persisted(partial))
            except ConfigPersistenceError as e:
                # The in-memory identity stands; it is simply not durable
                self.logger.error("Could not persist home organization", org_uid=org_uid, error=str(e))

        return identity
