"""
Simple MongoDB client manager that creates and tracks clients.
"""

import atexit
import threading

from loguru import logger
from pymongo import AsyncMongoClient

from ..config import config


class MongoManager:
    """
    Simple MongoDB client manager.

    Features:
    - Creates and tracks MongoDB clients per label
    - Loads connection strings from MONGO_URL_<LABEL> configuration keys
    - Configurable connection pool size and timeouts
    - Thread-safe singleton pattern

    Environment Variables Priority (highest to lowest):
    1. MONGO_URL_DEFAULT - Explicit default connection string
    2. MONGO_URL - System default connection string
    3. Hardcoded fallback - mongodb://localhost:27017/broadcast
    """

    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        """Singleton pattern: only one instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if hasattr(self, "_initialized"):
            return

        self._clients: dict[str, AsyncMongoClient] = {}
        self._connection_strings: dict[str, str] = {}
        self._lock = threading.Lock()

        self._load_connection_strings()

        self._max_pool_size = config.get_mongo_max_pool_size()
        self._server_selection_timeout = config.get_mongo_server_selection_timeout()
        self._connect_timeout = config.get_mongo_connect_timeout()
        self._socket_timeout = config.get_mongo_socket_timeout()
        logger.info(
            "Loaded MongoDB parameters: pool={} server_selection={}ms connect={}ms socket={}ms",
            self._max_pool_size,
            self._server_selection_timeout,
            self._connect_timeout,
            self._socket_timeout,
        )

        atexit.register(self.forget_all)

        self._initialized = True

    @staticmethod
    def _get_label_from_env_var(env_var: str) -> str | None:
        if env_var.startswith("MONGO_URL_"):
            return env_var[10:].lower()
        return None

    def _load_connection_strings(self):
        """Load MongoDB connection strings from centralized configuration."""
        for key, value in config.items():
            label = self._get_label_from_env_var(key)
            if label is None or not value:
                continue
            self._connection_strings[label] = value
            logger.info(
                "Loaded MongoDB connection string for label '{}': {}",
                label,
                hide_password_in_connection_string(value),
            )

        if "default" not in self._connection_strings:
            self._connection_strings["default"] = config.get_mongo_url("default")

        logger.info(
            "Loaded {} MongoDB connection strings: {}",
            len(self._connection_strings),
            list(self._connection_strings.keys()),
        )

    def get_client(self, label: str | None = None) -> AsyncMongoClient:
        """
        Get MongoDB client by label.

        Raises:
            ValueError: If label not found
        """
        label = label or "default"

        with self._lock:
            if label not in self._clients:
                if label not in self._connection_strings:
                    raise ValueError(f"No MongoDB connection string found for label '{label}'")

                logger.info("Open MongoDB client for label '{}'", label)
                self._clients[label] = AsyncMongoClient(
                    self._connection_strings[label],
                    serverSelectionTimeoutMS=self._server_selection_timeout,
                    connectTimeoutMS=self._connect_timeout,
                    socketTimeoutMS=self._socket_timeout,
                    maxPoolSize=self._max_pool_size,
                    tz_aware=True,
                )

            return self._clients[label]

    async def close_all(self):
        """Close all clients."""
        with self._lock:
            clients = list(self._clients.items())
            self._clients.clear()

        for label, client in clients:
            try:
                await client.close()
                logger.info("Closed MongoDB client for label '{}'", label)
            except Exception as e:
                logger.error("Error closing MongoDB client for label '{}': {}", label, e)

    def forget_all(self):
        """Drop client references on process exit; sockets close with the process."""
        with self._lock:
            self._clients.clear()


def hide_password_in_connection_string(connection_string: str) -> str:
    """
    Hide password in MongoDB connection string for security logging.

    Returns:
        Connection string with password replaced by `***`
    """
    if "://" not in connection_string or "@" not in connection_string:
        return connection_string

    protocol_part, rest = connection_string.split("://", 1)
    # Password might contain @ symbols, host part starts after the last one
    last_at_index = rest.rfind("@")
    auth_part = rest[:last_at_index]
    host_part = rest[last_at_index + 1 :]

    if ":" not in auth_part:
        return connection_string

    username, password = auth_part.split(":", 1)
    if not username or not password:
        return connection_string

    return f"{protocol_part}://{username}:***@{host_part}"


_mongo_manager = None


def get_mongo_manager() -> MongoManager:
    """Get the global MongoDB manager instance."""
    global _mongo_manager
    if _mongo_manager is None:
        _mongo_manager = MongoManager()
    return _mongo_manager


def get_mongo_client(label: str | None = None) -> AsyncMongoClient:
    """Get MongoDB client by label."""
    return get_mongo_manager().get_client(label)
