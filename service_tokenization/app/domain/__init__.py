"""
Domain components of the Tokenization Gateway.
"""

from .admission import AdmissionGate, NO_HOME_ORG_MESSAGE
from .detokenization import DetokenizationWorkflow
from .handshake import OrgConnectionHandshake
from .proxy import ContextEnrichingProxy, DEFAULT_PROXY_ROUTES, ProxyRoute
from .supervisor import WorkflowSupervisor
from .tokenization import (
    TOKEN_PENDING_MESSAGE,
    TokenLifecycleOrchestrator,
    WorkflowRun,
    WorkflowState,
)
from .unpack import ArchiveError, ZipArchiveUnpacker

__all__ = [
    "AdmissionGate",
    "NO_HOME_ORG_MESSAGE",
    "DetokenizationWorkflow",
    "OrgConnectionHandshake",
    "ContextEnrichingProxy",
    "DEFAULT_PROXY_ROUTES",
    "ProxyRoute",
    "WorkflowSupervisor",
    "TOKEN_PENDING_MESSAGE",
    "TokenLifecycleOrchestrator",
    "WorkflowRun",
    "WorkflowState",
    "ArchiveError",
    "ZipArchiveUnpacker",
]
