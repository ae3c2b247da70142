"""
Unit tests for ftp_vfs.sftp_client module.

Tests cover:
- Connect with key file auth
- Connect with password auth
- Keepalive on the transport
- list_dir returns FileStats list (permissions, owner, symlinks)
- get_file_info uses lstat
- download/upload go through sftp.get/sftp.put
- create_dir, delete_file, delete_dir, rename, chmod
- Error translation and retry on connection failures
- Path normalization
"""

import errno
import stat as stat_module
from datetime import datetime
from unittest.mock import MagicMock, patch

import paramiko
import pytest

from ftp_vfs.config import ConnectionConfig, SSHConfig
from ftp_vfs.ftp_client import FileStats
from ftp_vfs.sftp_client import SFTPClient, TrustOnFirstUsePolicy


@pytest.fixture
def ssh_config_keyfile() -> SSHConfig:
    """SSH config with key file auth."""
    return SSHConfig(
        host="test.ssh.local",
        port=22,
        username="testuser",
        key_file="/home/testuser/.ssh/id_rsa",
        use_agent=False,
    )


@pytest.fixture
def ssh_config_password() -> SSHConfig:
    """SSH config with password auth."""
    return SSHConfig(
        host="test.ssh.local",
        port=22,
        username="testuser",
        password="testpass",
        use_agent=False,
    )


@pytest.fixture
def mock_ssh_client():
    """Creates a mocked paramiko.SSHClient."""
    mock = MagicMock(spec=paramiko.SSHClient)
    mock_transport = MagicMock()
    mock_transport.is_active.return_value = True
    mock.get_transport.return_value = mock_transport
    return mock


@pytest.fixture
def mock_sftp():
    """Creates a mocked paramiko.SFTPClient."""
    return MagicMock(spec=paramiko.SFTPClient)


@pytest.fixture
def sftp_client(ssh_config_keyfile, conn_config, mock_ssh_client, mock_sftp):
    """Creates an SFTPClient with mocked SSH/SFTP connections."""
    with patch("ftp_vfs.sftp_client.paramiko.SSHClient", return_value=mock_ssh_client):
        mock_ssh_client.open_sftp.return_value = mock_sftp
        client = SFTPClient(ssh_config_keyfile, conn_config)
        client._ssh = mock_ssh_client
        client._sftp = mock_sftp
        client._connected = True
        yield client


def _make_sftp_attr(filename, size, mtime_ts, file_type=stat_module.S_IFREG, perms=0o644):
    """Helper to create SFTPAttributes."""
    attr = paramiko.SFTPAttributes()
    attr.filename = filename
    attr.st_size = size
    attr.st_mtime = mtime_ts
    attr.st_mode = file_type | perms
    attr.st_uid = 1000
    attr.st_gid = 100
    return attr


class TestSFTPClientConnect:
    """Tests for SFTPClient.connect method."""

    def test_connect_with_key_file(self, ssh_config_keyfile, conn_config):
        """Test connecting with SSH key file authentication."""
        with patch("ftp_vfs.sftp_client.paramiko.SSHClient") as MockSSH:
            mock_ssh = MagicMock()
            MockSSH.return_value = mock_ssh
            mock_ssh.open_sftp.return_value = MagicMock()

            client = SFTPClient(ssh_config_keyfile, conn_config)
            client.connect()

            mock_ssh.connect.assert_called_once()
            call_kwargs = mock_ssh.connect.call_args[1]
            assert call_kwargs["hostname"] == "test.ssh.local"
            assert call_kwargs["port"] == 22
            assert call_kwargs["username"] == "testuser"
            assert call_kwargs["key_filename"] == "/home/testuser/.ssh/id_rsa"
            assert call_kwargs["allow_agent"] is False

    def test_connect_with_password(self, ssh_config_password, conn_config):
        """Test connecting with password authentication."""
        with patch("ftp_vfs.sftp_client.paramiko.SSHClient") as MockSSH:
            mock_ssh = MagicMock()
            MockSSH.return_value = mock_ssh

            client = SFTPClient(ssh_config_password, conn_config)
            client.connect()

            call_kwargs = mock_ssh.connect.call_args[1]
            assert call_kwargs["password"] == "testpass"
            assert call_kwargs["look_for_keys"] is False

    def test_connect_sets_keepalive(self, ssh_config_password, conn_config):
        with patch("ftp_vfs.sftp_client.paramiko.SSHClient") as MockSSH:
            mock_ssh = MagicMock()
            MockSSH.return_value = mock_ssh

            client = SFTPClient(ssh_config_password, conn_config)
            client.connect()

            mock_ssh.get_transport.return_value.set_keepalive.assert_called_once_with(60)

    def test_connect_auth_failure_raises_permission_error(self, ssh_config_keyfile, conn_config):
        with patch("ftp_vfs.sftp_client.paramiko.SSHClient") as MockSSH:
            mock_ssh = MagicMock()
            MockSSH.return_value = mock_ssh
            mock_ssh.connect.side_effect = paramiko.AuthenticationException("bad key")

            client = SFTPClient(ssh_config_keyfile, conn_config)
            with pytest.raises(PermissionError, match="authentication failed"):
                client.connect()

    def test_connect_timeout_raises_timeout_error(self, ssh_config_keyfile, conn_config):
        with patch("ftp_vfs.sftp_client.paramiko.SSHClient") as MockSSH:
            mock_ssh = MagicMock()
            MockSSH.return_value = mock_ssh
            mock_ssh.connect.side_effect = TimeoutError("timed out")

            client = SFTPClient(ssh_config_keyfile, conn_config)
            with pytest.raises(TimeoutError):
                client.connect()

    def test_connect_refused_raises_connection_error(self, ssh_config_keyfile, conn_config):
        with patch("ftp_vfs.sftp_client.paramiko.SSHClient") as MockSSH:
            mock_ssh = MagicMock()
            MockSSH.return_value = mock_ssh
            mock_ssh.connect.side_effect = ConnectionRefusedError("refused")

            client = SFTPClient(ssh_config_keyfile, conn_config)
            with pytest.raises(ConnectionError):
                client.connect()

    def test_connect_sets_tofu_policy(self, ssh_config_keyfile, conn_config):
        with patch("ftp_vfs.sftp_client.paramiko.SSHClient") as MockSSH:
            mock_ssh = MagicMock()
            MockSSH.return_value = mock_ssh

            client = SFTPClient(ssh_config_keyfile, conn_config)
            client.connect()

            policy_arg = mock_ssh.set_missing_host_key_policy.call_args[0][0]
            assert isinstance(policy_arg, TrustOnFirstUsePolicy)


class TestTrustOnFirstUsePolicy:
    """Tests for the host key policy."""

    def test_unknown_host_key_is_saved(self, tmp_path):
        known_hosts = tmp_path / "ssh" / "known_hosts"
        policy = TrustOnFirstUsePolicy(known_hosts)
        client = MagicMock()
        client.get_host_keys.return_value.lookup.return_value = None
        key = MagicMock()
        key.get_name.return_value = "ssh-ed25519"

        policy.missing_host_key(client, "host", key)

        host_keys = client.get_host_keys.return_value
        host_keys.add.assert_called_once_with("host", "ssh-ed25519", key)
        host_keys.save.assert_called_once_with(str(known_hosts))

    def test_changed_host_key_is_rejected(self, tmp_path):
        policy = TrustOnFirstUsePolicy(tmp_path / "known_hosts")
        client = MagicMock()
        old_key = MagicMock()
        new_key = MagicMock()
        new_key.get_name.return_value = "ssh-ed25519"
        client.get_host_keys.return_value.lookup.return_value = {"ssh-ed25519": old_key}

        with pytest.raises(paramiko.SSHException, match="CHANGED"):
            policy.missing_host_key(client, "host", new_key)


class TestSFTPClientListDir:
    """Tests for SFTPClient.list_dir method."""

    def test_list_dir_returns_file_stats(self, sftp_client, mock_sftp):
        ts = datetime(2024, 6, 15, 10, 30).timestamp()
        mock_sftp.listdir_attr.return_value = [
            _make_sftp_attr("file1.txt", 1024, ts),
            _make_sftp_attr("subdir", 4096, ts, stat_module.S_IFDIR, 0o755),
        ]

        result = sftp_client.list_dir("/home/user")

        assert len(result) == 2
        assert isinstance(result[0], FileStats)
        assert result[0].name == "file1.txt"
        assert result[0].size == 1024
        assert result[0].mode == 0o644
        assert result[0].owner == "1000"
        assert result[0].group == "100"
        assert result[0].mtime == datetime(2024, 6, 15, 10, 30)
        assert result[1].is_dir is True
        assert result[1].size == 0
        assert result[1].mode == 0o755

    def test_list_dir_resolves_symlink_targets(self, sftp_client, mock_sftp):
        mock_sftp.listdir_attr.return_value = [
            _make_sftp_attr("latest", 7, 0, stat_module.S_IFLNK, 0o777),
        ]
        mock_sftp.readlink.return_value = "v1.2"

        result = sftp_client.list_dir("/releases")

        mock_sftp.readlink.assert_called_once_with("/releases/latest")
        assert result[0].is_link is True
        assert result[0].link_target == "v1.2"

    def test_list_dir_skips_dot_entries(self, sftp_client, mock_sftp):
        mock_sftp.listdir_attr.return_value = [
            _make_sftp_attr(".", 0, 0, stat_module.S_IFDIR),
            _make_sftp_attr("..", 0, 0, stat_module.S_IFDIR),
            _make_sftp_attr("a.txt", 1, 0),
        ]

        result = sftp_client.list_dir("/")

        assert [r.name for r in result] == ["a.txt"]

    def test_list_dir_missing_raises_filenotfounderror(self, sftp_client, mock_sftp):
        mock_sftp.listdir_attr.side_effect = OSError(errno.ENOENT, "No such file")

        with pytest.raises(FileNotFoundError):
            sftp_client.list_dir("/missing")

        assert mock_sftp.listdir_attr.call_count == 1


class TestSFTPClientGetFileInfo:
    """Tests for SFTPClient.get_file_info method."""

    def test_get_file_info_returns_stats(self, sftp_client, mock_sftp):
        mock_sftp.lstat.return_value = _make_sftp_attr("", 42, 0)

        result = sftp_client.get_file_info("/home/user/file.txt")

        mock_sftp.lstat.assert_called_once_with("/home/user/file.txt")
        assert result.name == "file.txt"
        assert result.size == 42
        assert result.is_file is True

    def test_get_file_info_root(self, sftp_client, mock_sftp):
        mock_sftp.lstat.return_value = _make_sftp_attr("", 0, 0, stat_module.S_IFDIR, 0o755)

        result = sftp_client.get_file_info("/")

        assert result.name == "/"
        assert result.is_dir is True


class TestSFTPClientFileOps:
    """Tests for transfer and mutation operations."""

    def test_download(self, sftp_client, mock_sftp):
        sftp_client.download("/remote/file.txt", "/tmp/local")
        mock_sftp.get.assert_called_once_with("/remote/file.txt", "/tmp/local")

    def test_upload(self, sftp_client, mock_sftp):
        sftp_client.upload("/remote/file.txt", "/tmp/local")
        mock_sftp.put.assert_called_once_with("/tmp/local", "/remote/file.txt")

    def test_create_dir(self, sftp_client, mock_sftp):
        sftp_client.create_dir("/home/user/newdir")
        mock_sftp.mkdir.assert_called_once_with("/home/user/newdir")

    def test_delete_file(self, sftp_client, mock_sftp):
        sftp_client.delete_file("/home/user/file.txt")
        mock_sftp.remove.assert_called_once_with("/home/user/file.txt")

    def test_delete_dir(self, sftp_client, mock_sftp):
        sftp_client.delete_dir("/home/user/dir")
        mock_sftp.rmdir.assert_called_once_with("/home/user/dir")

    def test_rename(self, sftp_client, mock_sftp):
        sftp_client.rename("/old.txt", "/new.txt")
        mock_sftp.rename.assert_called_once_with("/old.txt", "/new.txt")

    def test_chmod(self, sftp_client, mock_sftp):
        sftp_client.chmod("/file.txt", 0o600)
        mock_sftp.chmod.assert_called_once_with("/file.txt", 0o600)


class TestSFTPClientErrors:
    """Tests for error handling and retry."""

    def test_server_failure_is_not_retried(self, sftp_client, mock_sftp):
        """SFTP status errors come as IOError without errno and are permanent."""
        mock_sftp.rmdir.side_effect = OSError("Failure")

        with pytest.raises(OSError, match="Failure"):
            sftp_client.delete_dir("/dir")

        assert mock_sftp.rmdir.call_count == 1

    def test_permission_denied_propagates(self, sftp_client, mock_sftp):
        mock_sftp.remove.side_effect = OSError(errno.EACCES, "Permission denied")

        with pytest.raises(PermissionError):
            sftp_client.delete_file("/protected")

    def test_transient_error_is_retried(self, sftp_client, mock_sftp, mock_ssh_client):
        mock_sftp.mkdir.side_effect = [EOFError(), None]

        with patch("ftp_vfs.sftp_client.paramiko.SSHClient", return_value=mock_ssh_client):
            mock_ssh_client.open_sftp.return_value = mock_sftp
            sftp_client.create_dir("/newdir")

        assert mock_sftp.mkdir.call_count == 2

    def test_raises_after_all_retries_exhausted(self, sftp_client, mock_sftp, mock_ssh_client):
        mock_sftp.get.side_effect = paramiko.SSHException("channel closed")

        with patch("ftp_vfs.sftp_client.paramiko.SSHClient", return_value=mock_ssh_client):
            mock_ssh_client.open_sftp.return_value = mock_sftp
            with pytest.raises(OSError, match="download"):
                sftp_client.download("/file", "/tmp/x")

        assert mock_sftp.get.call_count == 3


class TestSFTPClientPathNormalization:
    """Tests for path normalization."""

    def test_backslash_to_forward_slash(self, sftp_client, mock_sftp):
        sftp_client.delete_file("\\home\\user\\file.txt")
        mock_sftp.remove.assert_called_once_with("/home/user/file.txt")

    def test_adds_leading_slash(self, sftp_client, mock_sftp):
        sftp_client.delete_file("file.txt")
        mock_sftp.remove.assert_called_once_with("/file.txt")


class TestSFTPClientDisconnect:
    """Tests for SFTPClient.disconnect method."""

    def test_disconnect_closes_sftp_and_ssh(self, sftp_client, mock_sftp, mock_ssh_client):
        sftp_client.disconnect()

        mock_sftp.close.assert_called_once()
        mock_ssh_client.close.assert_called_once()
        assert sftp_client._connected is False

    def test_disconnect_handles_close_errors(self, sftp_client, mock_sftp, mock_ssh_client):
        mock_sftp.close.side_effect = Exception("already closed")

        sftp_client.disconnect()

        mock_ssh_client.close.assert_called_once()
