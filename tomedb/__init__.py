"""Connection lifecycle and cross-engine query layer."""

from .adapters import AdapterSet, EngineAdapter
from .config import AppConfig, CoreSettings, load_config, save_config
from .errors import (
    ConnectionBackendError,
    DecryptionError,
    QueryExecutionError,
    SchemaIntrospectionError,
    TomeError,
    UnsupportedEngineError,
)
from .executor import QueryExecutor
from .introspection import SchemaInspector
from .models import (
    ConnectionDescriptor,
    ConnectionParams,
    ConnectionSettings,
    ConnectionTestResult,
    DatabaseSchema,
    Engine,
    NormalizedResult,
)
from .registry import ConnectionRegistry
from .session import SessionManager, SessionState
from .store import ConnectionStore
from .vault import CredentialVault

__version__ = "0.1.0"

__all__ = [
    "AdapterSet",
    "AppConfig",
    "ConnectionBackendError",
    "ConnectionDescriptor",
    "ConnectionParams",
    "ConnectionRegistry",
    "ConnectionSettings",
    "ConnectionStore",
    "ConnectionTestResult",
    "CoreSettings",
    "CredentialVault",
    "DatabaseSchema",
    "DecryptionError",
    "Engine",
    "EngineAdapter",
    "NormalizedResult",
    "QueryExecutionError",
    "QueryExecutor",
    "SchemaInspector",
    "SchemaIntrospectionError",
    "SessionManager",
    "SessionState",
    "TomeError",
    "UnsupportedEngineError",
    "load_config",
    "save_config",
]
