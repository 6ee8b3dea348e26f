"""
Backend selection for the document store.
"""

from identity_service.core.config import ServiceConfig, ensure_db_directory
from identity_service.core.errors import ConfigurationError
from identity_service.core.parameters import ParameterResolver
from util.logging import logger

from .firestore_store import FirestoreDocumentStore
from .index import IDocumentStore, SimpleInMemoryDocumentStore
from .sqlite_store import SQLiteDocumentStore


def get_document_store(config: ServiceConfig, parameters: ParameterResolver = None) -> IDocumentStore:
    """
    Build the document store named by config.document_store.

    Raises ConfigurationError when the backend cannot be initialised, which the
    invocation surface reports as a 500.
    """
    backend = config.document_store

    if backend == "memory":
        return SimpleInMemoryDocumentStore()

    if backend == "sqlite":
        try:
            ensure_db_directory(config.db_path)
            return SQLiteDocumentStore(config.db_path, timeout=config.store_timeout_sec)
        except Exception as e:
            logger.log_store_failure("init", "sqlite", e)
            raise ConfigurationError(f"Could not open SQLite store at {config.db_path}: {e}")

    if backend == "firestore":
        parameters = parameters if parameters is not None else ParameterResolver(config)
        try:
            credentials = parameters.get(config.firestore_cred_param)
            return FirestoreDocumentStore(credentials, timeout=config.store_timeout_sec)
        except ConfigurationError:
            raise
        except Exception as e:
            logger.log_store_failure("init", "firestore", e)
            raise ConfigurationError(f"Could not initialise Firestore: {e}")

    raise ConfigurationError(f"Unknown document store backend: {backend}")
