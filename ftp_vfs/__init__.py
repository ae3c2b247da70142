__version__ = "0.1.0"

# Public API exports
from .cache import MetadataCache
from .config import (
    AppConfig,
    CacheConfig,
    ConnectionConfig,
    FTPConfig,
    LogConfig,
    SSHConfig,
    StagingConfig,
    load_config,
)
from .file import MoveResult, RemoteFile
from .filesystem import BaseURLProvider, PublicURLProvider, RemoteFileSystem
from .ftp_client import FileStats, FTPClient
from .logger import setup_logging
from .paths import join_path, normalize_path, parent_path
from .remote_client import RemoteClient
from .sftp_client import SFTPClient
from .staging import StagedStream, StagingFile, StagingFilesystem

__all__ = [
    "__version__",
    # Configuration
    "AppConfig",
    "FTPConfig",
    "SSHConfig",
    "CacheConfig",
    "ConnectionConfig",
    "StagingConfig",
    "LogConfig",
    "load_config",
    "setup_logging",
    # Clients
    "RemoteClient",
    "FTPClient",
    "SFTPClient",
    "FileStats",
    # Cache
    "MetadataCache",
    # Staging
    "StagingFilesystem",
    "StagingFile",
    "StagedStream",
    # Filesystem
    "RemoteFileSystem",
    "RemoteFile",
    "MoveResult",
    "PublicURLProvider",
    "BaseURLProvider",
    # Paths
    "normalize_path",
    "parent_path",
    "join_path",
]
