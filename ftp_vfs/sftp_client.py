"""
SFTP client implementation using paramiko.

Provides the same interface as FTPClient but over SSH/SFTP,
allowing the filesystem layer to use either transport transparently.
"""

import logging
import os
import stat
import threading
import time
from dataclasses import replace
from datetime import datetime
from pathlib import Path

import paramiko

from .config import ConnectionConfig, SSHConfig
from .ftp_client import FileStats

logger = logging.getLogger(__name__)


class TrustOnFirstUsePolicy(paramiko.MissingHostKeyPolicy):
    """
    Trust-on-first-use host key policy (same model as OpenSSH).

    - Unknown host: accept and save key to ~/.ssh/known_hosts
    - Known host, same key: accept
    - Known host, CHANGED key: reject (possible MITM attack)
    """

    def __init__(self, known_hosts_path: Path | None = None):
        self._known_hosts_path = known_hosts_path or Path.home() / ".ssh" / "known_hosts"

    def missing_host_key(self, client, hostname, key):
        host_keys = client.get_host_keys()
        existing = host_keys.lookup(hostname)

        if existing is not None:
            existing_key = existing.get(key.get_name())
            if existing_key is not None and existing_key != key:
                raise paramiko.SSHException(
                    f"Host key for {hostname} has CHANGED. "
                    f"If the server key was legitimately changed, remove the old "
                    f"entry from {self._known_hosts_path} and try again."
                )

        logger.info("Adding host key for %s to known_hosts", hostname)
        host_keys.add(hostname, key.get_name(), key)

        try:
            self._known_hosts_path.parent.mkdir(parents=True, exist_ok=True)
            host_keys.save(str(self._known_hosts_path))
        except OSError as e:
            logger.warning("Could not save known_hosts: %s", e)


class SFTPClient:
    """
    High-level wrapper around paramiko's SSH/SFTP with connection management,
    retry logic, and the same interface as FTPClient.
    """

    def __init__(self, ssh_config: SSHConfig, conn_config: ConnectionConfig):
        self.ssh_config = ssh_config
        self.conn_config = conn_config
        self._ssh: paramiko.SSHClient | None = None
        self._sftp: paramiko.SFTPClient | None = None
        self._lock = threading.Lock()
        self._connected = False

    def connect(self) -> None:
        """Establish SSH connection and open SFTP session."""
        with self._lock:
            self._connect_internal()

    def _connect_internal(self) -> None:
        """Internal connect without lock - caller must hold lock."""
        try:
            self._ssh = paramiko.SSHClient()
            self._ssh.load_system_host_keys()
            self._ssh.set_missing_host_key_policy(TrustOnFirstUsePolicy())

            connect_kwargs: dict = {
                "hostname": self.ssh_config.host,
                "port": self.ssh_config.port,
                "timeout": self.conn_config.timeout_seconds,
                "allow_agent": self.ssh_config.use_agent,
            }

            if self.ssh_config.username:
                connect_kwargs["username"] = self.ssh_config.username

            # Auth priority: key file -> password -> agent/default keys
            if self.ssh_config.key_file:
                connect_kwargs["key_filename"] = os.path.expanduser(self.ssh_config.key_file)
                if self.ssh_config.key_passphrase:
                    connect_kwargs["passphrase"] = self.ssh_config.key_passphrase
                connect_kwargs["look_for_keys"] = True
            elif self.ssh_config.password:
                connect_kwargs["password"] = self.ssh_config.password
                connect_kwargs["look_for_keys"] = False
            else:
                connect_kwargs["look_for_keys"] = True

            logger.debug("Connecting to SSH %s:%d", self.ssh_config.host, self.ssh_config.port)
            self._ssh.connect(**connect_kwargs)

            transport = self._ssh.get_transport()
            if transport is not None and self.conn_config.keepalive_interval_seconds:
                transport.set_keepalive(self.conn_config.keepalive_interval_seconds)

            self._sftp = self._ssh.open_sftp()
            self._connected = True
            logger.info(
                "Connected to SSH server %s:%d",
                self.ssh_config.host,
                self.ssh_config.port,
            )

        except paramiko.AuthenticationException as e:
            self._connected = False
            self._cleanup_connections()
            logger.error("SSH authentication failed: %s", e)
            raise PermissionError(f"SSH authentication failed: {e}") from e
        except TimeoutError as e:
            self._connected = False
            self._cleanup_connections()
            logger.error("SSH connection timeout: %s", e)
            raise TimeoutError(f"SSH connection timeout: {e}") from e
        except OSError as e:
            self._connected = False
            self._cleanup_connections()
            logger.error("SSH connection failed: %s", e)
            raise ConnectionError(f"SSH connection failed: {e}") from e
        except paramiko.SSHException as e:
            self._connected = False
            self._cleanup_connections()
            logger.error("SSH error: %s", e)
            raise ConnectionError(f"SSH error: {e}") from e

    def _cleanup_connections(self) -> None:
        """Close SFTP and SSH without raising."""
        if self._sftp:
            try:
                self._sftp.close()
            except Exception:
                pass
            self._sftp = None
        if self._ssh:
            try:
                self._ssh.close()
            except Exception:
                pass
            self._ssh = None

    def disconnect(self) -> None:
        """Close SFTP session and SSH connection."""
        with self._lock:
            self._disconnect_internal()

    def _disconnect_internal(self) -> None:
        """Internal disconnect without lock - caller must hold lock."""
        self._cleanup_connections()
        self._connected = False
        logger.debug("SSH connection closed")

    def _ensure_connected(self) -> None:
        """Ensure connection is active, reconnect if needed. Caller must hold lock."""
        if not self._connected or not self._sftp or not self._ssh:
            logger.debug("SSH connection not active, reconnecting")
            self._connect_internal()
            return

        transport = self._ssh.get_transport()
        if transport is None or not transport.is_active():
            logger.debug("SSH transport lost, reconnecting")
            self._disconnect_internal()
            self._connect_internal()

    def _normalize_path(self, path: str) -> str:
        """Ensure path has leading slash and uses forward slashes."""
        path = path.replace("\\", "/")
        if not path.startswith("/"):
            path = "/" + path
        return path

    def _is_transient(self, error: Exception) -> bool:
        """Connection-level failures are retried, server status errors are not."""
        if isinstance(error, (TimeoutError, ConnectionError, EOFError, paramiko.SSHException)):
            return True
        # paramiko reports SFTP_FAILURE and friends as an IOError without errno
        return isinstance(error, OSError) and error.errno is not None

    def _with_retry(self, operation: str, func, *args, **kwargs):
        """Execute a function with retry logic."""
        last_exception = None

        for attempt in range(self.conn_config.retry_attempts):
            try:
                with self._lock:
                    self._ensure_connected()
                    return func(*args, **kwargs)
            except (FileNotFoundError, FileExistsError, PermissionError):
                raise
            except (OSError, EOFError, paramiko.SSHException) as e:
                if not self._is_transient(e):
                    raise
                last_exception = e
                logger.warning(
                    "%s failed (attempt %d/%d): %s",
                    operation,
                    attempt + 1,
                    self.conn_config.retry_attempts,
                    e,
                )

                if attempt < self.conn_config.retry_attempts - 1:
                    time.sleep(self.conn_config.retry_delay_seconds)
                    with self._lock:
                        self._disconnect_internal()

        logger.error("%s failed after %d attempts", operation, self.conn_config.retry_attempts)
        raise OSError(f"{operation} failed: {last_exception}") from last_exception

    def _stats_from_attr(self, name: str, attr: paramiko.SFTPAttributes) -> FileStats:
        """Build FileStats from lstat-style attributes."""
        st_mode = attr.st_mode or 0
        is_dir = stat.S_ISDIR(st_mode)
        return FileStats(
            name=name,
            size=attr.st_size if attr.st_size and not is_dir else 0,
            mtime=datetime.fromtimestamp(attr.st_mtime) if attr.st_mtime else datetime.now(),
            is_dir=is_dir,
            is_link=stat.S_ISLNK(st_mode),
            owner=str(attr.st_uid) if attr.st_uid is not None else None,
            group=str(attr.st_gid) if attr.st_gid is not None else None,
            mode=stat.S_IMODE(st_mode),
        )

    def list_dir(self, path: str) -> list[FileStats]:
        """List contents of a directory."""
        path = self._normalize_path(path)
        logger.debug("Listing directory: %s", path)

        def _list_dir_internal() -> list[FileStats]:
            results = []
            for attr in self._sftp.listdir_attr(path):
                if attr.filename in (".", ".."):
                    continue
                stats = self._stats_from_attr(attr.filename, attr)
                if stats.is_link:
                    target = self._sftp.readlink(path.rstrip("/") + "/" + attr.filename)
                    stats = replace(stats, link_target=target)
                results.append(stats)

            logger.debug("Listed %d entries in %s", len(results), path)
            return results

        return self._with_retry(f"list_dir({path})", _list_dir_internal)

    def get_file_info(self, path: str) -> FileStats:
        """Get metadata for a single file, directory or symlink."""
        path = self._normalize_path(path)
        logger.debug("Getting file info: %s", path)

        def _get_file_info_internal() -> FileStats:
            attr = self._sftp.lstat(path)
            name = path.rstrip("/").rsplit("/", 1)[-1] or "/"
            stats = self._stats_from_attr(name, attr)
            if stats.is_link:
                stats = replace(stats, link_target=self._sftp.readlink(path))
            return stats

        return self._with_retry(f"get_file_info({path})", _get_file_info_internal)

    def download(self, path: str, local_path: str) -> None:
        """Download a remote file into a local file, replacing its content."""
        path = self._normalize_path(path)
        logger.debug("Downloading %s -> %s", path, local_path)

        def _download_internal() -> None:
            self._sftp.get(path, local_path)
            logger.debug("Downloaded %s", path)

        self._with_retry(f"download({path})", _download_internal)

    def upload(self, path: str, local_path: str) -> None:
        """Upload a local file, replacing the remote file's content."""
        path = self._normalize_path(path)
        logger.debug("Uploading %s -> %s", local_path, path)

        def _upload_internal() -> None:
            self._sftp.put(local_path, path)
            logger.debug("Uploaded %s", path)

        self._with_retry(f"upload({path})", _upload_internal)

    def create_dir(self, path: str) -> None:
        """Create a single directory. The parent must exist."""
        path = self._normalize_path(path)
        logger.debug("Creating directory: %s", path)

        def _create_dir_internal() -> None:
            self._sftp.mkdir(path)
            logger.debug("Created directory: %s", path)

        self._with_retry(f"create_dir({path})", _create_dir_internal)

    def delete_file(self, path: str) -> None:
        """Delete a file or symlink."""
        path = self._normalize_path(path)
        logger.debug("Deleting file: %s", path)

        def _delete_file_internal() -> None:
            self._sftp.remove(path)
            logger.debug("Deleted file: %s", path)

        self._with_retry(f"delete_file({path})", _delete_file_internal)

    def delete_dir(self, path: str) -> None:
        """Delete a directory (must be empty)."""
        path = self._normalize_path(path)
        logger.debug("Deleting directory: %s", path)

        def _delete_dir_internal() -> None:
            self._sftp.rmdir(path)
            logger.debug("Deleted directory: %s", path)

        self._with_retry(f"delete_dir({path})", _delete_dir_internal)

    def rename(self, old_path: str, new_path: str) -> None:
        """Rename or move a file/directory."""
        old_path = self._normalize_path(old_path)
        new_path = self._normalize_path(new_path)
        logger.debug("Renaming: %s -> %s", old_path, new_path)

        def _rename_internal() -> None:
            self._sftp.rename(old_path, new_path)
            logger.debug("Renamed: %s -> %s", old_path, new_path)

        self._with_retry(f"rename({old_path}, {new_path})", _rename_internal)

    def chmod(self, path: str, mode: int) -> None:
        """Change permission bits."""
        path = self._normalize_path(path)
        logger.debug("Changing mode: %s -> %o", path, mode)

        def _chmod_internal() -> None:
            self._sftp.chmod(path, mode)
            logger.debug("Changed mode: %s -> %o", path, mode)

        self._with_retry(f"chmod({path})", _chmod_internal)
