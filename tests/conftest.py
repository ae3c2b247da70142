"""
Shared pytest fixtures for ftp_vfs tests.
"""

import ftplib
from collections.abc import Generator
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from ftp_vfs.config import (
    AppConfig,
    CacheConfig,
    ConnectionConfig,
    FTPConfig,
    LogConfig,
    SSHConfig,
    StagingConfig,
)
from ftp_vfs.filesystem import RemoteFileSystem
from ftp_vfs.ftp_client import FileStats, FTPClient
from ftp_vfs.paths import parent_path
from ftp_vfs.staging import StagingFilesystem


class MemoryClient:
    """
    In-memory RemoteClient double.

    Holds a tree of entries keyed by absolute path and raises the same
    builtin exceptions the real clients raise. `failures` maps a method name
    to an exception raised on every call to it; `calls` records
    (method, path) pairs.
    """

    def __init__(self):
        self.entries: dict[str, dict] = {"/": self._entry(is_dir=True, mode=0o755)}
        self.failures: dict[str, Exception] = {}
        self.calls: list[tuple[str, str]] = []
        self.connected = False

    @staticmethod
    def _entry(is_dir=False, data=b"", mode=0o644, link_target=None, owner="user", group="staff"):
        return {
            "is_dir": is_dir,
            "data": data,
            "mode": mode,
            "link_target": link_target,
            "owner": owner,
            "group": group,
            "mtime": datetime(2024, 1, 15, 10, 30, 0),
        }

    def _record(self, method: str, path: str) -> None:
        self.calls.append((method, path))
        if method in self.failures:
            raise self.failures[method]

    def _require(self, path: str) -> dict:
        if path not in self.entries:
            raise FileNotFoundError(f"550 No such file or directory: {path}")
        return self.entries[path]

    def _children(self, path: str) -> list[str]:
        return [p for p in self.entries if p != "/" and parent_path(p) == path]

    # Helpers for arranging test trees

    def add_file(self, path: str, data: bytes = b"", mode: int = 0o644) -> None:
        self.entries[path] = self._entry(data=data, mode=mode)

    def add_dir(self, path: str, mode: int = 0o755) -> None:
        self.entries[path] = self._entry(is_dir=True, mode=mode)

    def add_link(self, path: str, target: str) -> None:
        self.entries[path] = self._entry(mode=0o777, link_target=target)

    def data(self, path: str) -> bytes:
        return self.entries[path]["data"]

    def count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    # RemoteClient interface

    def connect(self) -> None:
        self.connected = True

    def disconnect(self) -> None:
        self.connected = False

    def _stats(self, path: str) -> FileStats:
        entry = self.entries[path]
        return FileStats(
            name=path.rsplit("/", 1)[-1] or "/",
            size=0 if entry["is_dir"] else len(entry["data"]),
            mtime=entry["mtime"],
            is_dir=entry["is_dir"],
            is_link=entry["link_target"] is not None,
            link_target=entry["link_target"],
            owner=entry["owner"],
            group=entry["group"],
            mode=entry["mode"],
        )

    def list_dir(self, path: str) -> list[FileStats]:
        self._record("list_dir", path)
        if not self._require(path)["is_dir"]:
            raise NotADirectoryError(path)
        return [self._stats(child) for child in sorted(self._children(path))]

    def get_file_info(self, path: str) -> FileStats:
        self._record("get_file_info", path)
        self._require(path)
        return self._stats(path)

    def download(self, path: str, local_path: str) -> None:
        self._record("download", path)
        entry = self._require(path)
        if entry["is_dir"]:
            raise IsADirectoryError(path)
        Path(local_path).write_bytes(entry["data"])

    def upload(self, path: str, local_path: str) -> None:
        self._record("upload", path)
        parent = self.entries.get(parent_path(path))
        if parent is None or not parent["is_dir"]:
            raise FileNotFoundError(f"550 No such file or directory: {path}")
        entry = self.entries.setdefault(path, self._entry())
        entry["data"] = Path(local_path).read_bytes()

    def create_dir(self, path: str) -> None:
        self._record("create_dir", path)
        if path in self.entries:
            raise FileExistsError(f"550 File exists: {path}")
        self._require(parent_path(path))
        self.add_dir(path)

    def delete_file(self, path: str) -> None:
        self._record("delete_file", path)
        if self._require(path)["is_dir"]:
            raise IsADirectoryError(path)
        del self.entries[path]

    def delete_dir(self, path: str) -> None:
        self._record("delete_dir", path)
        self._require(path)
        if self._children(path):
            raise OSError(f"550 Directory not empty: {path}")
        del self.entries[path]

    def rename(self, old_path: str, new_path: str) -> None:
        self._record("rename", old_path)
        self._require(old_path)
        moved = {
            p: e for p, e in self.entries.items() if p == old_path or p.startswith(old_path + "/")
        }
        for p, e in moved.items():
            del self.entries[p]
            self.entries[new_path + p[len(old_path) :]] = e

    def chmod(self, path: str, mode: int) -> None:
        self._record("chmod", path)
        self._require(path)["mode"] = mode


@pytest.fixture
def tmp_config_file(tmp_path: Path) -> Generator[Path, None, None]:
    """
    Creates a temporary INI configuration file for config tests.

    Returns:
        Path to the temporary config file.
    """
    config_content = f"""[general]
protocol = ftp

[ftp]
host = testserver.local
port = 2121
username = testuser
password = testpass
passive_mode = true
encoding = utf-8
path = /pub
visible_password = true

[cache]
enabled = true
metadata_ttl_seconds = 120
max_entries = 64

[connection]
timeout_seconds = 45
retry_attempts = 5
retry_delay_seconds = 2
keepalive_interval_seconds = 90

[staging]
directory = {tmp_path / "staging"}
prefix = stage_

[logging]
level = DEBUG
file = test.log
console = false
"""
    config_path = tmp_path / "test_config.ini"
    config_path.write_text(config_content, encoding="utf-8")
    yield config_path


@pytest.fixture
def minimal_config_file(tmp_path: Path) -> Generator[Path, None, None]:
    """
    Creates a minimal INI configuration file with only required fields.

    Returns:
        Path to the temporary config file.
    """
    config_content = """[ftp]
host = minimal.server.com
"""
    config_path = tmp_path / "minimal_config.ini"
    config_path.write_text(config_content, encoding="utf-8")
    yield config_path


@pytest.fixture
def mock_ftp() -> Generator[MagicMock, None, None]:
    """
    Creates a mocked ftplib.FTP instance.

    Returns:
        Mocked FTP object with common methods stubbed.
    """
    mock = MagicMock(spec=ftplib.FTP)
    mock.encoding = "utf-8"

    # Default responses
    mock.sendcmd.return_value = "200 OK"
    mock.voidcmd.return_value = None
    mock.login.return_value = "230 Login successful"
    mock.cwd.return_value = "250 OK"
    mock.pwd.return_value = "/"
    mock.quit.return_value = "221 Goodbye"

    yield mock


@pytest.fixture
def ftp_config() -> FTPConfig:
    """Creates a standard FTPConfig for testing."""
    return FTPConfig(
        host="test.ftp.local",
        port=2121,
        username="testuser",
        password="testpass",
        passive_mode=True,
        encoding="utf-8",
    )


@pytest.fixture
def ssh_config() -> SSHConfig:
    """Creates a standard SSHConfig for testing."""
    return SSHConfig(
        host="test.ssh.local",
        port=22,
        username="testuser",
        password="testpass",
        use_agent=False,
    )


@pytest.fixture
def conn_config() -> ConnectionConfig:
    """Creates a ConnectionConfig for testing (no retry delay)."""
    return ConnectionConfig(
        timeout_seconds=30,
        retry_attempts=3,
        retry_delay_seconds=0,
        keepalive_interval_seconds=60,
    )


@pytest.fixture
def cache_config() -> CacheConfig:
    """Creates an enabled CacheConfig for testing."""
    return CacheConfig(enabled=True, metadata_ttl_seconds=60, max_entries=128)


@pytest.fixture
def staging_config(tmp_path: Path) -> StagingConfig:
    """Staging directory inside the test's tmp_path."""
    return StagingConfig(directory=str(tmp_path / "staging"), prefix="ftp_")


@pytest.fixture
def ftp_client(
    ftp_config: FTPConfig, conn_config: ConnectionConfig, mock_ftp: MagicMock
) -> Generator[FTPClient, None, None]:
    """
    Creates an FTPClient with a mocked FTP connection.

    Returns:
        FTPClient instance with mocked underlying FTP.
    """
    with patch("ftp_vfs.ftp_client.ftplib.FTP", return_value=mock_ftp):
        client = FTPClient(ftp_config, conn_config)
        client._ftp = mock_ftp
        client._connected = True
        client._supports_mlsd = True
        client._supports_mlst = True
        yield client


@pytest.fixture
def memory_client() -> MemoryClient:
    """Empty in-memory server (root directory only)."""
    return MemoryClient()


@pytest.fixture
def remote_fs(
    memory_client: MemoryClient, staging_config: StagingConfig
) -> Generator[RemoteFileSystem, None, None]:
    """
    RemoteFileSystem over the in-memory client, metadata cache off.

    Credentials are set so URL rendering can be checked.
    """
    config = FTPConfig(host="ftp.example.com", port=21, username="user", password="secret")
    fs = RemoteFileSystem(memory_client, config, staging=StagingFilesystem(staging_config))
    fs.connect()
    yield fs
    fs.close()


@pytest.fixture
def other_fs(staging_config: StagingConfig) -> Generator[RemoteFileSystem, None, None]:
    """A second, independent filesystem for cross-backend copy and move."""
    config = SSHConfig(host="sftp.example.com", username="other", password="pw")
    fs = RemoteFileSystem(MemoryClient(), config, staging=StagingFilesystem(staging_config))
    fs.connect()
    yield fs
    fs.close()


@pytest.fixture
def sample_file_stats() -> FileStats:
    """Creates sample FileStats for testing."""
    return FileStats(
        name="testfile.txt",
        size=12345,
        mtime=datetime(2024, 1, 15, 10, 30, 0),
        is_dir=False,
        mode=0o644,
    )


@pytest.fixture
def sample_dir_stats() -> FileStats:
    """Creates sample directory FileStats for testing."""
    return FileStats(
        name="testdir",
        size=0,
        mtime=datetime(2024, 1, 15, 10, 30, 0),
        is_dir=True,
        mode=0o755,
    )


@pytest.fixture
def app_config(
    ftp_config: FTPConfig,
    conn_config: ConnectionConfig,
    cache_config: CacheConfig,
    staging_config: StagingConfig,
) -> AppConfig:
    """Creates a complete AppConfig for testing."""
    return AppConfig(
        ftp=ftp_config,
        cache=cache_config,
        connection=conn_config,
        staging=staging_config,
        logging=LogConfig(level="DEBUG", file="", console=False),
    )
