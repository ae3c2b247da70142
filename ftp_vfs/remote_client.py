"""
Remote client protocol definition.

Defines the transport interface that both FTPClient and SFTPClient implement,
allowing RemoteFileSystem to work with either protocol.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from .ftp_client import FileStats


@runtime_checkable
class RemoteClient(Protocol):
    """Protocol defining the remote transport interface.

    Implementations raise standard Python exceptions; RemoteFileSystem turns
    them into plain success/failure results.
    """

    def connect(self) -> None:
        """Establish connection to the remote server."""
        ...

    def disconnect(self) -> None:
        """Close connection to the remote server."""
        ...

    def list_dir(self, path: str) -> list[FileStats]:
        """List contents of a directory.

        Args:
            path: Absolute remote path.

        Returns:
            List of FileStats objects for directory entries.

        Raises:
            FileNotFoundError: If path does not exist.
            PermissionError: If access denied.
        """
        ...

    def get_file_info(self, path: str) -> FileStats:
        """Get metadata for a single file, directory or link.

        Raises:
            FileNotFoundError: If path does not exist.
        """
        ...

    def download(self, path: str, local_path: str) -> None:
        """Copy a remote file into a local file."""
        ...

    def upload(self, path: str, local_path: str) -> None:
        """Replace a remote file with the content of a local file."""
        ...

    def create_dir(self, path: str) -> None:
        """Create a single directory."""
        ...

    def delete_file(self, path: str) -> None:
        """Delete a file."""
        ...

    def delete_dir(self, path: str) -> None:
        """Delete a directory (must be empty)."""
        ...

    def rename(self, old_path: str, new_path: str) -> None:
        """Rename or move a file/directory."""
        ...

    def chmod(self, path: str, mode: int) -> None:
        """Change permission bits of a file/directory."""
        ...
