"""
Token lifecycle orchestration.

A run submits a token to the driver and acknowledges the caller as soon as
the driver reports a pending transaction. The rest runs detached on the
workflow supervisor:

    REQUESTED -> SUBMITTED -> AWAITING_TX_CONFIRMATION -> TX_CONFIRMED
              -> AWAITING_WAREHOUSE_UPDATE -> DONE

Either awaiting state ends in ABANDONED when its poll budget runs out, and
any state ends in FAILED on an error that polling does not absorb. Outcomes
after the acknowledgment are only visible in logs and metrics.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from shared.errors import ExternalServiceError, GatewayException
from shared.logging import get_logger, set_run_id
from shared.retry import RetryConfig, poll_until
from service_tokenization.app.adapters import DriverClient, RegistryClient
from service_tokenization.app.schemas import TokenizeRequest
from .supervisor import WorkflowSupervisor

TOKEN_PENDING_MESSAGE = "Your token is being created and should be ready in a few minutes."
TOKEN_CREATION_FAILED_MESSAGE = "Error token could not be created"

# Fixed payment terms sent with every token; the caller's amount is not used
PAYMENT_AMOUNT = 100
PAYMENT_FEE = 100

# Registry-internal linkage that must not be sent back on a unit update
REGISTRY_LINKAGE_FIELDS = frozenset({"issuanceId", "orgUid", "serialNumberBlock"})

POLL_ERRORS = (ExternalServiceError, ValueError)


class WorkflowState(str, Enum):
    """Workflow run states."""
    REQUESTED = "requested"
    SUBMITTED = "submitted"
    AWAITING_TX_CONFIRMATION = "awaiting_tx_confirmation"
    TX_CONFIRMED = "tx_confirmed"
    AWAITING_WAREHOUSE_UPDATE = "awaiting_warehouse_update"
    DONE = "done"
    ABANDONED = "abandoned"
    FAILED = "failed"


TERMINAL_STATES = frozenset({WorkflowState.DONE, WorkflowState.ABANDONED, WorkflowState.FAILED})

ALLOWED_TRANSITIONS = {
    WorkflowState.REQUESTED: {WorkflowState.SUBMITTED, WorkflowState.FAILED},
    WorkflowState.SUBMITTED: {WorkflowState.AWAITING_TX_CONFIRMATION, WorkflowState.FAILED},
    WorkflowState.AWAITING_TX_CONFIRMATION: {
        WorkflowState.TX_CONFIRMED, WorkflowState.ABANDONED, WorkflowState.FAILED,
    },
    WorkflowState.TX_CONFIRMED: {WorkflowState.AWAITING_WAREHOUSE_UPDATE, WorkflowState.FAILED},
    WorkflowState.AWAITING_WAREHOUSE_UPDATE: {
        WorkflowState.DONE, WorkflowState.ABANDONED, WorkflowState.FAILED,
    },
}


class InvalidTransitionError(Exception):
    """Raised on a state change the workflow does not allow."""


class TokenCreationError(GatewayException):
    """The driver did not accept the token request."""

    def __init__(self, error: str):
        super().__init__("TOKEN_CREATION_FAILED", TOKEN_CREATION_FAILED_MESSAGE, error=error)


@dataclass(frozen=True)
class TokenCreationRecord:
    """What the driver returned for an accepted token request."""

    token: Dict[str, Any]
    transaction_id: str

    @property
    def asset_id(self) -> Optional[str]:
        return self.token.get("asset_id")

    @classmethod
    def from_driver_response(cls, body: Dict[str, Any]) -> Optional["TokenCreationRecord"]:
        """Build a record when the response carries a pending transaction id."""
        tx = body.get("tx")
        transaction_id = tx.get("id") if isinstance(tx, dict) else None
        if not transaction_id:
            return None
        token = body.get("token")
        return cls(token=token if isinstance(token, dict) else {}, transaction_id=str(transaction_id))


@dataclass
class WorkflowRun:
    """One in-memory execution of the tokenize-confirm-register pipeline."""

    request: TokenizeRequest
    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    state: WorkflowState = WorkflowState.REQUESTED
    record: Optional[TokenCreationRecord] = None
    tx_attempts: int = 0
    staging_attempts: int = 0
    error: Optional[str] = None
    history: List[WorkflowState] = field(default_factory=lambda: [WorkflowState.REQUESTED])
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def transition(self, new_state: WorkflowState) -> None:
        if new_state not in ALLOWED_TRANSITIONS.get(self.state, set()):
            raise InvalidTransitionError(f"{self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)


def build_token_payload(request: TokenizeRequest) -> Dict[str, Any]:
    """Driver request body for a token creation."""
    return {
        "token": {
            "org_uid": request.org_uid,
            "warehouse_project_id": request.warehouse_project_id,
            "vintage_year": request.vintage_year,
            "sequence_num": request.sequence_num,
        },
        "payment": {
            "amount": PAYMENT_AMOUNT,
            "fee": PAYMENT_FEE,
            "to_address": request.to_address,
        },
    }


def build_unit_patch(unit: Dict[str, Any], asset_id: str, marketplace: Optional[str] = None) -> Dict[str, Any]:
    """New unit record linking the unit to its token.

    Null fields and registry-internal linkage are left out; the fetched
    record is not modified.
    """
    patch = {
        key: value for key, value in unit.items()
        if key not in REGISTRY_LINKAGE_FIELDS and value is not None
    }

    issuance = unit.get("issuance")
    if isinstance(issuance, dict):
        patch["issuance"] = {key: value for key, value in issuance.items() if key != "orgUid"}

    patch["marketplaceIdentifier"] = asset_id
    if marketplace:
        patch["marketplace"] = marketplace
    return patch


class TokenLifecycleOrchestrator:
    """Submits tokens and drives their confirmation back into the registry."""

    def __init__(self,
                 driver_client: DriverClient,
                 registry_client: RegistryClient,
                 supervisor: WorkflowSupervisor,
                 *,
                 poll_config: Optional[RetryConfig] = None,
                 update_registry_units: bool = True,
                 marketplace_name: Optional[str] = None,
                 metrics=None,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self.driver_client = driver_client
        self.registry_client = registry_client
        self.supervisor = supervisor
        self.poll_config = poll_config or RetryConfig.fixed(interval=30.0, max_attempts=60)
        self.update_registry_units = update_registry_units
        self.marketplace_name = marketplace_name
        self.metrics = metrics
        self.sleep = sleep
        self.logger = get_logger("tokenization.orchestrator")

    async def submit(self, request: TokenizeRequest) -> WorkflowRun:
        """Create the token on the driver and hand the run to the supervisor.

        Raises TokenCreationError when the driver call fails or returns no
        pending transaction; the run is FAILED in that case.
        """
        run = WorkflowRun(request=request)
        log = self.logger.bind(run_id=run.run_id, warehouse_unit_id=request.warehouseUnitId)
        log.info("Tokenization requested", org_uid=request.org_uid)

        try:
            response = await self.driver_client.create_token(build_token_payload(request))
        except ExternalServiceError as e:
            self._fail(run, e.reason)
            raise TokenCreationError(e.reason) from e

        record = TokenCreationRecord.from_driver_response(response)
        if record is None:
            error = str(response.get("error") or "Driver returned no pending transaction")
            self._fail(run, error)
            raise TokenCreationError(error)

        run.record = record
        run.transition(WorkflowState.SUBMITTED)
        log.info("Token submitted", transaction_id=record.transaction_id, asset_id=record.asset_id)

        self.supervisor.spawn(self.complete(run), name=f"tokenize-{run.run_id}")
        return run

    async def complete(self, run: WorkflowRun) -> WorkflowRun:
        """Run the post-acknowledgment phases to a terminal state."""
        set_run_id(run.run_id)
        try:
            if await self._await_transaction(run):
                await self._reconcile_registry(run)
        except (GatewayException, ValueError) as e:
            self._fail(run, getattr(e, "message", None) or str(e))
        except Exception as e:
            self._fail(run, str(e))
            raise
        return run

    async def _await_transaction(self, run: WorkflowRun) -> bool:
        run.transition(WorkflowState.AWAITING_TX_CONFIRMATION)
        transaction_id = run.record.transaction_id

        outcome = await poll_until(
            lambda: self.driver_client.is_transaction_confirmed(transaction_id),
            self.poll_config,
            name="driver_transaction",
            retry_on=POLL_ERRORS,
            sleep=self.sleep,
            on_attempt=self._attempt_recorder("driver_transaction"),
        )
        run.tx_attempts = outcome.attempts

        if not outcome.confirmed:
            self._abandon(run, f"Transaction {transaction_id} not confirmed after {outcome.attempts} attempts")
            return False

        run.transition(WorkflowState.TX_CONFIRMED)
        self.logger.info("Token transaction confirmed", run_id=run.run_id, attempts=outcome.attempts)
        return True

    async def _reconcile_registry(self, run: WorkflowRun) -> None:
        record = run.record
        asset_id = record.asset_id
        if not asset_id:
            raise ValueError("Token descriptor has no asset_id")

        run.transition(WorkflowState.AWAITING_WAREHOUSE_UPDATE)
        response = await self.registry_client.register_token_metadata(asset_id, record.token)

        if self.registry_client.is_home_org_updating(response):
            outcome = await poll_until(
                self.registry_client.is_staging_confirmed,
                self.poll_config,
                name="registry_staging",
                retry_on=POLL_ERRORS,
                sleep=self.sleep,
                on_attempt=self._attempt_recorder("registry_staging"),
            )
            run.staging_attempts = outcome.attempts
            if not outcome.confirmed:
                self._abandon(run, f"Registry did not confirm token {asset_id} after {outcome.attempts} attempts")
                return

        if not self.update_registry_units:
            self.logger.info("Unit update disabled, token registered only", run_id=run.run_id, asset_id=asset_id)
            self._finish(run)
            return

        unit = await self.registry_client.get_unit(run.request.warehouseUnitId)
        await self.registry_client.update_unit(build_unit_patch(unit, asset_id, self.marketplace_name))
        await self.registry_client.commit_staging()

        self.logger.info(
            "Unit linked to token",
            run_id=run.run_id,
            warehouse_unit_id=run.request.warehouseUnitId,
            asset_id=asset_id
        )
        self._finish(run)

    def _attempt_recorder(self, target: str):
        def record(attempt: int, outcome: str) -> None:
            if self.metrics is not None:
                self.metrics.record_poll_attempt(target, outcome)
        return record

    def _finish(self, run: WorkflowRun) -> None:
        run.transition(WorkflowState.DONE)
        self._record_terminal(run)
        elapsed = (datetime.now(timezone.utc) - run.created_at).total_seconds()
        self.logger.info("Tokenization workflow done", run_id=run.run_id, elapsed_seconds=round(elapsed, 3))

    def _abandon(self, run: WorkflowRun, reason: str) -> None:
        run.error = reason
        run.transition(WorkflowState.ABANDONED)
        self._record_terminal(run)
        self.logger.warning("Tokenization workflow abandoned", run_id=run.run_id, reason=reason)

    def _fail(self, run: WorkflowRun, error: str) -> None:
        run.error = error
        if not run.is_terminal:
            run.state = WorkflowState.FAILED
            run.history.append(WorkflowState.FAILED)
        self._record_terminal(run)
        # No compensation: a token already created on the driver stays unlinked
        self.logger.error(
            "Tokenization workflow failed",
            run_id=run.run_id,
            state=run.history[-2].value if len(run.history) > 1 else run.state.value,
            error=error
        )

    def _record_terminal(self, run: WorkflowRun) -> None:
        if self.metrics is not None:
            self.metrics.record_workflow_state(run.state.value)
