"""
Temporary staging files.

Content moving between the caller and the remote server always passes
through a throwaway local file. Handles are context managers so the file is
removed whichever way the transfer ends.
"""

import logging
import os
import tempfile
from pathlib import Path

from .config import StagingConfig

logger = logging.getLogger(__name__)


class StagingFile:
    """Handle to one throwaway local file."""

    def __init__(self, path: str):
        self.path = path

    def get_contents(self) -> bytes:
        return Path(self.path).read_bytes()

    def set_contents(self, data: bytes) -> None:
        Path(self.path).write_bytes(data)

    def open(self, mode: str = "rb", **kwargs):
        return open(self.path, mode, **kwargs)

    def delete(self) -> None:
        try:
            os.unlink(self.path)
            logger.debug("Removed staging file %s", self.path)
        except FileNotFoundError:
            pass

    def __enter__(self) -> "StagingFile":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.delete()

    def __repr__(self):
        return f"StagingFile({self.path!r})"


class StagedStream:
    """
    File object over a staging file.

    Behaves like the underlying local file. On close the optional
    `on_close` callback receives the staging file (writable streams use it
    to upload), then the staging file is removed.
    """

    def __init__(self, handle, staging_file: StagingFile, on_close=None):
        self._handle = handle
        self._staging_file = staging_file
        self._on_close = on_close

    def close(self) -> None:
        if self._handle.closed:
            return
        try:
            self._handle.close()
            if self._on_close is not None:
                self._on_close(self._staging_file)
        finally:
            self._staging_file.delete()

    def __getattr__(self, name):
        return getattr(self._handle, name)

    def __iter__(self):
        return iter(self._handle)

    def __enter__(self) -> "StagedStream":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class StagingFilesystem:
    """Creates staging files in one local directory."""

    def __init__(self, config: StagingConfig | None = None):
        self.config = config or StagingConfig()

    def create_temp_file(self, prefix: str | None = None) -> StagingFile:
        """
        Create an empty staging file.

        Args:
            prefix: File name prefix, defaults to the configured one.

        Returns:
            StagingFile handle. The caller owns it and must delete it.
        """
        directory = Path(self.config.directory)
        directory.mkdir(parents=True, exist_ok=True)
        fd, path = tempfile.mkstemp(prefix=prefix or self.config.prefix, dir=directory)
        os.close(fd)
        logger.debug("Created staging file %s", path)
        return StagingFile(path)
