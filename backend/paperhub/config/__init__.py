from .config import (
    Config,
    LoggingConfig,
    MigrationConfig,
    MongoConfig,
    PostgresConfig,
    Settings,
)

__all__ = [
    "Config",
    "LoggingConfig",
    "MigrationConfig",
    "MongoConfig",
    "PostgresConfig",
    "Settings",
]
