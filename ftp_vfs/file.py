"""
Remote file nodes.

A RemoteFile names one path on a RemoteFileSystem and offers the same
contract as a local file: metadata queries, content I/O, create, delete,
copy, move and listing. It keeps nothing but its path and a reference to
the filesystem, so every query is a fresh round-trip to the server and
results of two queries may disagree if the entry changed in between.

Content is never streamed from the server directly. Reads download into a
staging file, writes upload a staging file, and read-modify-write operations
(append, truncate) transfer the whole file both ways.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime
from io import UnsupportedOperation
from typing import TYPE_CHECKING, NoReturn

from .ftp_client import FileStats
from .paths import basename, join_path, normalize_path, parent_path
from .staging import StagedStream, StagingFile

if TYPE_CHECKING:
    from .filesystem import RemoteFileSystem

logger = logging.getLogger(__name__)

READ_BITS = 0o444
WRITE_BITS = 0o222
EXECUTE_BITS = 0o111


@dataclass(frozen=True)
class MoveResult:
    """Outcome of RemoteFile.move_to.

    A copy-based move that copied but could not delete the source reports
    copied=True, source_deleted=False: both entries exist afterwards.
    """

    success: bool
    method: str  # "rename" or "copy"
    copied: bool = False
    source_deleted: bool = False

    def __bool__(self) -> bool:
        return self.success


class RemoteFile:
    """One path on a remote filesystem."""

    def __init__(self, path: str, filesystem: RemoteFileSystem):
        self._path = normalize_path(path)
        self._fs = filesystem

    @property
    def path(self) -> str:
        return self._path

    @property
    def filesystem(self) -> RemoteFileSystem:
        return self._fs

    @property
    def name(self) -> str:
        return basename(self._path)

    @property
    def extension(self) -> str:
        name = self.name.lstrip(".")
        return name.rsplit(".", 1)[1] if "." in name else ""

    def get_pathname(self) -> str:
        return self._path

    def get_parent(self) -> RemoteFile | None:
        """Parent directory node, or None for the root."""
        parent = parent_path(self._path)
        if parent is None:
            return None
        return RemoteFile(parent, self._fs)

    def get_child(self, name: str) -> RemoteFile:
        return RemoteFile(join_path(self._path, name), self._fs)

    def _lookup(self) -> FileStats | None | bool:
        """Raw stat result: snapshot, None when absent, False on backend failure."""
        return self._fs.stat(self._path)

    def _stat(self) -> FileStats | None:
        # Accessors have no failure channel, an unreachable entry reads as absent
        return self._lookup() or None

    # Metadata

    def exists(self) -> bool:
        return self._stat() is not None

    def is_file(self) -> bool:
        stats = self._stat()
        return stats.is_file if stats else False

    def is_directory(self) -> bool:
        stats = self._stat()
        return stats.is_dir if stats else False

    def is_link(self) -> bool:
        stats = self._stat()
        return stats.is_link if stats else False

    def get_link_target(self) -> str | None:
        stats = self._stat()
        return stats.link_target if stats and stats.is_link else None

    def get_size(self) -> int | None:
        stats = self._stat()
        return stats.size if stats else None

    def get_owner(self) -> str | None:
        stats = self._stat()
        return stats.owner if stats else None

    def get_group(self) -> str | None:
        stats = self._stat()
        return stats.group if stats else None

    def get_mode(self) -> int | None:
        stats = self._stat()
        return stats.mode if stats else None

    def get_modify_time(self) -> datetime | None:
        stats = self._stat()
        return stats.mtime if stats else None

    # The protocols only report one timestamp
    def get_access_time(self) -> datetime | None:
        return self.get_modify_time()

    def get_creation_time(self) -> datetime | None:
        return self.get_modify_time()

    def _mode_allows(self, bits: int) -> bool:
        stats = self._stat()
        return bool(stats.mode & bits) if stats else False

    def is_readable(self) -> bool:
        return self._mode_allows(READ_BITS)

    def is_writable(self) -> bool:
        return self._mode_allows(WRITE_BITS)

    def is_executable(self) -> bool:
        return self._mode_allows(EXECUTE_BITS)

    def set_mode(self, mode: int) -> bool:
        return self._fs.chmod(self._path, mode)

    # Neither protocol has a primitive for these

    def set_owner(self, owner: str | int) -> NoReturn:
        raise UnsupportedOperation(f"{self._fs.scheme} cannot change the owner of {self._path}")

    def set_group(self, group: str | int) -> NoReturn:
        raise UnsupportedOperation(f"{self._fs.scheme} cannot change the group of {self._path}")

    def set_access_time(self, time: datetime) -> NoReturn:
        raise UnsupportedOperation(f"{self._fs.scheme} cannot set access times")

    def set_modify_time(self, time: datetime) -> NoReturn:
        raise UnsupportedOperation(f"{self._fs.scheme} cannot set modification times")

    def touch(self, time: datetime | None = None, atime: datetime | None = None) -> NoReturn:
        raise UnsupportedOperation(f"{self._fs.scheme} cannot set file times")

    # Creation and deletion

    def delete(self, recursive: bool = False) -> bool:
        """
        Delete this entry.

        A missing entry counts as deleted. A non-empty directory is only
        deleted when `recursive` is set; children are removed depth-first
        and the first failure aborts, leaving the tree partially deleted.

        Returns:
            True if the entry no longer exists, False if it could not be
            deleted or its metadata could not be fetched.
        """
        stats = self._lookup()
        if stats is False:
            logger.warning("delete: cannot stat %s, aborting", self._path)
            return False
        if stats is None:
            logger.debug("delete: %s does not exist", self._path)
            return True

        if stats.is_dir:
            children = self.list_all()
            if children is None:
                return False
            if recursive:
                for child in children:
                    if not child.delete(recursive=True):
                        logger.warning("delete: aborting %s, failed on %s", self._path, child.path)
                        return False
            elif children:
                logger.info("delete: refusing to delete non-empty directory %s", self._path)
                return False

        return self._fs.delete(self._path, is_dir=stats.is_dir)

    def create_directory(self, recursive: bool = False) -> bool:
        """
        Create this directory.

        Succeeds without a server call if the directory already exists and
        fails if a non-directory entry has the path. With `recursive` the
        missing ancestors are created first, otherwise the parent must exist.
        """
        stats = self._lookup()
        if stats is False:
            logger.warning("create_directory: cannot stat %s, aborting", self._path)
            return False
        if stats is not None:
            return stats.is_dir

        parent = self.get_parent()
        if parent is not None:
            if recursive:
                if not parent.create_directory(recursive=True):
                    return False
            elif not parent.is_directory():
                logger.debug("create_directory: parent of %s is not a directory", self._path)
                return False

        return self._fs.mkdir(self._path)

    def create_file(self, parents: bool = False) -> bool:
        """Create an empty file, creating missing parent directories if `parents`."""
        parent = self.get_parent()
        if parent is None:
            return False
        if parents:
            if not parent.create_directory(recursive=True):
                return False
        elif not parent.is_directory():
            return False

        return self.set_contents(b"")

    # Content

    def get_contents(self) -> bytes | None:
        """
        Download the file content.

        Returns:
            The content, or None if the file does not exist.

        Raises:
            IsADirectoryError: If the path is a directory.
            OSError: If the metadata lookup or the download fails.
        """
        stats = self._lookup()
        if stats is False:
            raise OSError(f"Metadata lookup failed: {self.get_url()}")
        if stats is None:
            return None
        if stats.is_dir:
            raise IsADirectoryError(f"Is a directory: {self._path}")

        with self._fs.staging.create_temp_file() as staging_file:
            if not self._fs.get(self._path, staging_file.path):
                raise OSError(f"Download failed: {self.get_url()}")
            return staging_file.get_contents()

    def set_contents(self, content: bytes | str) -> bool:
        """Replace the file content. Fails if the path is a directory."""
        if isinstance(content, str):
            content = content.encode(self._fs.encoding)

        stats = self._lookup()
        if stats is False:
            logger.warning("set_contents: cannot stat %s, aborting", self._path)
            return False
        if stats is not None and stats.is_dir:
            logger.info("set_contents: %s is a directory", self._path)
            return False

        with self._fs.staging.create_temp_file() as staging_file:
            staging_file.set_contents(content)
            return self._fs.put(self._path, staging_file.path)

    def _contents_for_update(self) -> bytes | None:
        """Current content for read-modify-write: b"" when absent, None when unreadable."""
        try:
            content = self.get_contents()
        except OSError as e:
            # IsADirectoryError included
            logger.info("cannot update %s: %s", self._path, e)
            return None
        return content or b""

    def append_contents(self, content: bytes | str) -> bool:
        if isinstance(content, str):
            content = content.encode(self._fs.encoding)
        current = self._contents_for_update()
        if current is None:
            return False
        return self.set_contents(current + content)

    def truncate(self, size: int = 0) -> bool:
        """Cut the file down to `size` bytes by re-uploading its head."""
        content = b""
        if size > 0:
            current = self._contents_for_update()
            if current is None:
                return False
            content = current[:size]
        return self.set_contents(content)

    def get_md5(self, raw: bool = False) -> bytes | str | None:
        return self._hash("md5", raw)

    def get_sha1(self, raw: bool = False) -> bytes | str | None:
        return self._hash("sha1", raw)

    def _hash(self, algorithm: str, raw: bool) -> bytes | str | None:
        content = self.get_contents()
        if content is None:
            return None
        digest = hashlib.new(algorithm, content)
        return digest.digest() if raw else digest.hexdigest()

    def open(self, mode: str = "rb", **kwargs) -> StagedStream:
        """
        Open the file as a local file object.

        Read and append modes download the current content first; "w"
        modes start empty and overwrite the remote file. Writable streams
        upload on close. Extra keyword arguments go to the builtin open().

        Raises:
            FileNotFoundError: In read mode, if the file does not exist.
        """
        writable = any(flag in mode for flag in "wa+")
        staging_file = self._fs.staging.create_temp_file()
        try:
            if "w" not in mode:
                content = self.get_contents()
                if content is None and "r" in mode:
                    raise FileNotFoundError(f"No such file: {self.get_url()}")
                staging_file.set_contents(content or b"")
            handle = staging_file.open(mode, **kwargs)
        except BaseException:
            staging_file.delete()
            raise

        logger.debug("open: %s (%s) staged in %s", self._path, mode, staging_file.path)
        return StagedStream(handle, staging_file, self._upload_staged if writable else None)

    def _upload_staged(self, staging_file: StagingFile) -> None:
        if not self._fs.put(self._path, staging_file.path):
            raise OSError(f"Upload failed: {self.get_url()}")

    # Copy and move

    def copy_to(self, destination, recursive: bool = False) -> bool:
        """
        Copy this entry to `destination` through its content contract.

        Works across backends: the destination only needs set_contents()
        for files, plus create_directory() and get_child() for directories.
        Directories are copied only when `recursive` is set.
        """
        stats = self._lookup()
        if not stats:
            logger.debug("copy_to: %s does not exist or cannot be read", self._path)
            return False

        if stats.is_dir:
            if not recursive:
                logger.info("copy_to: %s is a directory and recursive is off", self._path)
                return False
            if not destination.create_directory(recursive=True):
                return False
            children = self.list_all()
            if children is None:
                return False
            return all(
                child.copy_to(destination.get_child(child.name), recursive=True)
                for child in children
            )

        try:
            content = self.get_contents()
        except OSError as e:
            logger.warning("copy_to: reading %s failed: %s", self._path, e)
            return False
        if content is None:
            return False
        return bool(destination.set_contents(content))

    def move_to(self, destination) -> MoveResult:
        """
        Move this entry to `destination`.

        Uses the server's rename when the destination's filesystem allows a
        native rename, otherwise copies and then deletes the source. The
        copy path is not atomic; check MoveResult.source_deleted.
        """
        other_fs = getattr(destination, "filesystem", None)
        if other_fs is not None and self._fs.supports_native_rename_with(other_fs):
            renamed = self._fs.rename(self._path, destination.path)
            return MoveResult(success=renamed, method="rename", source_deleted=renamed)

        if not self.copy_to(destination, recursive=True):
            return MoveResult(success=False, method="copy")

        deleted = self.delete(recursive=True)
        if not deleted:
            logger.warning("move_to: copied %s but could not delete the source", self._path)
        return MoveResult(success=deleted, method="copy", copied=True, source_deleted=deleted)

    # Listing

    def _list_entries(self) -> list[tuple[RemoteFile, FileStats]] | None:
        stats = self._stat()
        if stats is None or not stats.is_dir:
            return None
        listing = self._fs.list(self._path)
        if listing is None:
            return None
        return [(self.get_child(entry.name), entry) for entry in listing]

    def list_all(self) -> list[RemoteFile] | None:
        """Direct children of this directory, or None if it is not a directory."""
        entries = self._list_entries()
        if entries is None:
            return None
        return [child for child, _ in entries]

    def walk(self) -> Iterator[tuple[RemoteFile, list[RemoteFile], list[RemoteFile]]]:
        """Top-down tree walk yielding (directory, subdirectories, files), like os.walk."""
        entries = self._list_entries()
        if entries is None:
            return
        directories = [child for child, stats in entries if stats.is_dir]
        files = [child for child, stats in entries if not stats.is_dir]
        yield self, directories, files
        for directory in directories:
            yield from directory.walk()

    # URLs

    def get_real_url(self) -> str:
        """URL with credentials in clear text. Not for display or logs."""
        return self._fs.render_url(self._path, show_password=True)

    def get_url(self) -> str:
        """URL with the password masked unless visible_password is configured."""
        return self._fs.render_url(self._path, show_password=self._fs.config.visible_password)

    def get_public_url(self) -> str | None:
        """
        Public address from the filesystem's public URL provider.

        Raises:
            LookupError: If no provider is configured.
        """
        return self._fs.get_public_url(self)

    def __eq__(self, other):
        if not isinstance(other, RemoteFile):
            return NotImplemented
        return self._path == other._path and self._fs is other._fs

    def __hash__(self):
        return hash((self._path, id(self._fs)))

    def __repr__(self):
        return f"RemoteFile({self.get_url()!r})"

    def __str__(self):
        return self._path
