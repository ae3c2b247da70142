"""
Remote filesystem backend.

Wraps a transport client (FTP, FTPS or SFTP) and exposes the small set of
operations RemoteFile is built on. Transport exceptions stop here: every
operation logs the cause and reports failure as None or False.
"""

from __future__ import annotations

import logging
from functools import wraps
from typing import Protocol, runtime_checkable
from urllib.parse import quote

from .cache import MetadataCache
from .config import AppConfig, CacheConfig, FTPConfig, SSHConfig
from .file import RemoteFile
from .ftp_client import FileStats, FTPClient
from .paths import normalize_path
from .remote_client import RemoteClient
from .sftp_client import SFTPClient
from .staging import StagingFilesystem

logger = logging.getLogger(__name__)

PASSWORD_MASK = "***"


def operation(failure=False):
    """Decorator for backend operations - provides logging and turns
    transport errors into the given failure value."""

    def decorator(fn):
        name = fn.__name__

        @wraps(fn)
        def wrapper(self, *args, **kwargs):
            try:
                result = fn(self, *args, **kwargs)
                logger.debug("%s%r: OK", name, args)
                return result
            except OSError as exc:
                logger.warning("%s%r: FAIL - %s", name, args, exc)
                return failure

        return wrapper

    return decorator


@runtime_checkable
class PublicURLProvider(Protocol):
    """Strategy resolving the public address of a file, e.g. an HTTP mirror."""

    def get_public_url(self, file: RemoteFile) -> str | None: ...


class BaseURLProvider:
    """Maps every file to a fixed base URL plus the file's path."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip("/")

    def get_public_url(self, file: RemoteFile) -> str | None:
        return self.base_url + quote(file.get_pathname())


class RemoteFileSystem:
    """Backend for RemoteFile nodes on one FTP/SFTP server.

    File paths handed to this class are relative to the configured base
    path; `remote_path` maps them to server paths.
    """

    def __init__(
        self,
        client: RemoteClient,
        config: FTPConfig | SSHConfig,
        staging: StagingFilesystem | None = None,
        public_url_provider: PublicURLProvider | None = None,
        cache_config: CacheConfig | None = None,
    ):
        self.client = client
        self.config = config
        self.staging = staging or StagingFilesystem()
        self.public_url_provider = public_url_provider
        self.base_path = normalize_path(config.path)
        self.meta_cache = None
        if cache_config is not None and cache_config.enabled:
            self.meta_cache = MetadataCache(
                cache_config.metadata_ttl_seconds, cache_config.max_entries
            )
        logger.info(
            "RemoteFileSystem initialized for %s (metadata cache: %s)",
            self.render_url("/"),
            "on" if self.meta_cache is not None else "off",
        )

    @classmethod
    def from_config(
        cls, config: AppConfig, public_url_provider: PublicURLProvider | None = None
    ) -> RemoteFileSystem:
        """Build the client matching config.protocol and wrap it."""
        if config.protocol == "sftp":
            remote_config = config.ssh
            client = SFTPClient(config.ssh, config.connection)
        else:
            remote_config = config.ftp
            client = FTPClient(config.ftp, config.connection)

        return cls(
            client,
            remote_config,
            staging=StagingFilesystem(config.staging),
            public_url_provider=public_url_provider,
            cache_config=config.cache,
        )

    @property
    def scheme(self) -> str:
        if isinstance(self.config, SSHConfig):
            return "sftp"
        return "ftps" if self.config.secure else "ftp"

    @property
    def encoding(self) -> str:
        return self.config.encoding

    def connect(self) -> None:
        self.client.connect()

    def close(self) -> None:
        self.client.disconnect()
        if self.meta_cache is not None:
            self.meta_cache.clear()

    def __enter__(self) -> RemoteFileSystem:
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def get_file(self, path: str) -> RemoteFile:
        """Return the node for a path. No I/O happens here."""
        return RemoteFile(path, self)

    @property
    def root(self) -> RemoteFile:
        return RemoteFile("/", self)

    def remote_path(self, path: str) -> str:
        """Map a file path to the server path below the base path."""
        # Clamp the file path at its own root before prefixing the base path
        return normalize_path(self.base_path + normalize_path(path))

    def render_url(self, path: str, show_password: bool = False) -> str:
        """
        Render scheme://[user[:password]@]host:port/base/path for a file path.

        Args:
            path: File path relative to the base path.
            show_password: Include the password in clear text instead of ***.
        """
        netloc = ""
        if self.config.username:
            netloc = quote(self.config.username, safe="")
            if self.config.password:
                password = quote(self.config.password, safe="") if show_password else PASSWORD_MASK
                netloc += ":" + password
            netloc += "@"
        netloc += f"{self.config.host}:{self.config.port}"
        return f"{self.scheme}://{netloc}{self.remote_path(path)}"

    def get_public_url(self, file: RemoteFile) -> str | None:
        if self.public_url_provider is None:
            raise LookupError(f"No public URL provider configured for {self.render_url('/')}")
        return self.public_url_provider.get_public_url(file)

    def supports_native_rename_with(self, other: object) -> bool:
        """Whether a rename between this backend and `other` is a single server call."""
        return other is self

    def _invalidate(self, path: str, tree: bool = False) -> None:
        if self.meta_cache is None:
            return
        if tree:
            self.meta_cache.invalidate_tree(path)
        else:
            self.meta_cache.invalidate(path)

    @operation(failure=False)
    def stat(self, path: str) -> FileStats | None | bool:
        """
        Metadata snapshot for a path.

        Returns:
            FileStats for an existing entry, None if the entry does not
            exist, False if the server could not be asked.
        """
        if self.meta_cache is not None:
            cached = self.meta_cache.get(path)
            if cached is not None:
                return cached

        try:
            stats = self.client.get_file_info(self.remote_path(path))
        except FileNotFoundError:
            logger.debug("stat: %s does not exist", path)
            return None

        if self.meta_cache is not None:
            self.meta_cache.put(path, stats)
        return stats

    @operation(failure=None)
    def list(self, path: str) -> list[FileStats] | None:
        return self.client.list_dir(self.remote_path(path))

    @operation()
    def mkdir(self, path: str) -> bool:
        self.client.create_dir(self.remote_path(path))
        self._invalidate(path)
        return True

    @operation()
    def delete(self, path: str, is_dir: bool = False) -> bool:
        if is_dir:
            self.client.delete_dir(self.remote_path(path))
        else:
            self.client.delete_file(self.remote_path(path))
        self._invalidate(path, tree=is_dir)
        return True

    @operation()
    def rename(self, path_from: str, path_to: str) -> bool:
        self.client.rename(self.remote_path(path_from), self.remote_path(path_to))
        self._invalidate(path_from, tree=True)
        self._invalidate(path_to, tree=True)
        return True

    @operation()
    def get(self, path: str, local_path: str) -> bool:
        self.client.download(self.remote_path(path), local_path)
        return True

    @operation()
    def put(self, path: str, local_path: str) -> bool:
        self.client.upload(self.remote_path(path), local_path)
        self._invalidate(path)
        return True

    @operation()
    def chmod(self, path: str, mode: int) -> bool:
        self.client.chmod(self.remote_path(path), mode)
        self._invalidate(path)
        return True

    def __repr__(self):
        return f"RemoteFileSystem({self.render_url('/')!r})"
