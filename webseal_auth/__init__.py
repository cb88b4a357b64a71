"""Authentication adapter for WebSEAL-style authenticating gateways.

Validates credentials against the gateway and reconciles the outcome with a
local identity record.
"""

from .client import GatewayDictionary, GatewayError, GatewayReply, GatewayTimeout, WebsealClient
from .config import ConfigurationError, GatewayConfig, get_gateway_config, load_gateway_config
from .credentials import Credentials, extract_credentials
from .resolver import RejectionReason, WebsealAuthenticator, persist_without_validation
from .store import IdentityRecord, IdentityStore, InMemoryIdentityStore, PersistenceError
from .uid import default_uid_generator, hashed_uid_generator

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "Credentials",
    "GatewayConfig",
    "GatewayDictionary",
    "GatewayError",
    "GatewayReply",
    "GatewayTimeout",
    "IdentityRecord",
    "IdentityStore",
    "InMemoryIdentityStore",
    "PersistenceError",
    "RejectionReason",
    "WebsealAuthenticator",
    "WebsealClient",
    "default_uid_generator",
    "extract_credentials",
    "get_gateway_config",
    "hashed_uid_generator",
    "load_gateway_config",
    "persist_without_validation",
]
