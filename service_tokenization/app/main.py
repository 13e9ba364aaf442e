"""
Tokenization Gateway service.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import File, Form, UploadFile
from fastapi.responses import PlainTextResponse

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.retry import RetryConfig
from service_tokenization.app.adapters import DriverClient, RegistryClient
from service_tokenization.app.domain import (
    AdmissionGate,
    ContextEnrichingProxy,
    DetokenizationWorkflow,
    OrgConnectionHandshake,
    TOKEN_PENDING_MESSAGE,
    TokenLifecycleOrchestrator,
    WorkflowSupervisor,
    ZipArchiveUnpacker,
)
from service_tokenization.app.identity import IdentityStore, YamlConfigPersistence, load_identity
from service_tokenization.app.schemas import ConnectRequest, TokenizeRequest

SERVICE_NAME = "tokenization"
DEFAULT_PORT = 31311
CONNECTED_MESSAGE = "Successfully connected to organization."


class TokenizationGatewayService(BaseService):
    """Home-org gateway in front of the registry and the token driver."""

    def __init__(self,
                 config: Optional[ServiceConfig] = None,
                 identity_store: Optional[IdentityStore] = None,
                 persistence: Optional[YamlConfigPersistence] = None,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        config = config or get_config(SERVICE_NAME, DEFAULT_PORT)

        # The admission gate is installed during BaseService setup and needs the store
        self.persistence = persistence or YamlConfigPersistence(config.config_file)
        self.identity_store = identity_store or IdentityStore(load_identity(config, self.persistence))

        super().__init__(SERVICE_NAME, config.port, config)

        self.registry_client = RegistryClient(self.identity_store, timeout=self.config.request_timeout)
        self.driver_client = DriverClient(self.identity_store, timeout=self.config.request_timeout)
        self.supervisor = WorkflowSupervisor(metrics=self.metrics)

        self.proxy = ContextEnrichingProxy(
            self.identity_store,
            timeout=self.config.request_timeout,
            metrics=self.metrics
        )
        self.handshake = OrgConnectionHandshake(self.identity_store, self.registry_client, self.persistence)
        self.orchestrator = TokenLifecycleOrchestrator(
            self.driver_client,
            self.registry_client,
            self.supervisor,
            poll_config=RetryConfig.fixed(
                interval=self.config.confirmation_poll_interval,
                max_attempts=self.config.confirmation_poll_max_attempts
            ),
            update_registry_units=self.config.update_registry_units,
            marketplace_name=self.config.marketplace_name,
            metrics=self.metrics,
            sleep=sleep,
        )
        self.detokenization = DetokenizationWorkflow(self.driver_client, ZipArchiveUnpacker(), metrics=self.metrics)

        @self.app.on_event("startup")
        async def _startup():
            identity = self.identity_store.get()
            self.logger.info(
                "Tokenization gateway started",
                home_org=identity.home_org,
                registry_host=identity.registry_host,
                driver_host=identity.driver_host
            )

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.supervisor.shutdown()

        self.proxy.register(self.app)
        self._setup_gateway_routes()

    def _setup_middleware(self):
        """Admission gate innermost, so its rejections still get CORS and timing."""
        self.app.add_middleware(AdmissionGate, identity_store=self.identity_store)
        super()._setup_middleware()

    def _setup_gateway_routes(self):
        """Set up gateway-specific routes."""

        @self.app.get("/")
        async def root():
            identity = self.identity_store.get()
            return {
                "service": SERVICE_NAME,
                "message": "Tokenization gateway",
                "connected": identity.has_home_org,
                **self.identity_store.as_dict(),
            }

        @self.app.post("/connect")
        async def connect(body: ConnectRequest):
            """Adopt an organization known to the registry as the home org."""
            identity = await self.handshake.connect(body.orgUid)
            self.metrics.record_business_event("org_connected")
            return {"message": CONNECTED_MESSAGE, "orgUid": identity.home_org}

        @self.app.post("/tokenize", response_class=PlainTextResponse)
        async def tokenize(body: TokenizeRequest):
            """Submit a token; confirmation and registry linkage continue in the background."""
            await self.orchestrator.submit(body)
            self.metrics.record_business_event("token_submitted")
            return PlainTextResponse(TOKEN_PENDING_MESSAGE)

        @self.app.post("/detokenize")
        async def detokenize(file: UploadFile = File(...), password: str = Form(...)):
            data = await file.read()
            return await self.detokenization.detokenize(data, password)

    async def _check_dependencies(self) -> Dict[str, str]:
        identity = self.identity_store.get()
        return {
            "home_org": "connected" if identity.has_home_org else "not_connected",
            "workflows_active": str(self.supervisor.active),
        }


def create_app():
    """Create FastAPI application."""
    service = TokenizationGatewayService()
    return service.app


def main():
    service = TokenizationGatewayService()
    service.run()


if __name__ == "__main__":
    main()
