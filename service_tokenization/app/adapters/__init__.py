"""
Adapters package for the Tokenization Gateway.

Contains HTTP client wrappers for the two upstream services (registry and
driver). These adapters encapsulate:

- Base URLs, read from the identity store on every call
- Request shapes and response decoding
- Retry of idempotent reads and mapping of failures to ExternalServiceError

Keep adapters thin and side-effect free outside of explicit calls.
"""

from .registry_client import RegistryClient, HOME_ORG_UPDATING_MESSAGE
from .driver_client import DriverClient

__all__ = [
    "RegistryClient",
    "DriverClient",
    "HOME_ORG_UPDATING_MESSAGE",
]
