"""
Identity state for the gateway: the home organization and upstream hosts.

The store is the only mutable shared state in the service. It is created
once by the service and handed to every component that needs it.
"""

from .store import IdentityConfiguration, IdentityStore
from .persistence import ConfigPersistenceError, YamlConfigPersistence, load_identity, to_persisted

__all__ = [
    "IdentityConfiguration",
    "IdentityStore",
    "ConfigPersistenceError",
    "YamlConfigPersistence",
    "load_identity",
    "to_persisted",
]
