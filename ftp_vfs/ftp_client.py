import ftplib
import logging
import socket
import threading
import time
from dataclasses import dataclass
from datetime import datetime

from .config import ConnectionConfig, FTPConfig

logger = logging.getLogger(__name__)

# Facts requested through OPTS MLST so MLSD/MLST report permissions and ownership
MLST_FACTS = "type;size;modify;perm;unix.mode;unix.uid;unix.gid;unix.owner;unix.group;"

MONTHS = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}

# setuid/setgid/sticky bits keyed by position in the rwxrwxrwx string
SPECIAL_BITS = {2: 0o4000, 5: 0o2000, 8: 0o1000}


@dataclass(frozen=True)
class FileStats:
    """Metadata snapshot of one remote entry at one point in time."""

    name: str
    size: int
    mtime: datetime
    is_dir: bool
    is_link: bool = False
    link_target: str | None = None
    owner: str | None = None
    group: str | None = None
    mode: int = 0  # Permission bits, e.g. 0o644

    @property
    def is_file(self) -> bool:
        return not self.is_dir and not self.is_link


def parse_permissions(perms: str) -> int:
    """Convert an ls-style permission string (e.g. "-rwxr-xr-x") to mode bits."""
    mode = 0
    for index, char in enumerate(perms[1:10]):
        if char in "rwxst":
            mode |= 1 << (8 - index)
        if char in "sStT":
            mode |= SPECIAL_BITS.get(index, 0)
    return mode


class FTPClient:
    """
    High-level wrapper around ftplib.FTP (or FTP_TLS) with reconnection,
    retry logic, and simplified API.
    """

    def __init__(self, ftp_config: FTPConfig, conn_config: ConnectionConfig):
        self.ftp_config = ftp_config
        self.conn_config = conn_config
        self._ftp: ftplib.FTP | None = None
        self._lock = threading.Lock()
        self._connected = False
        # Track server capabilities
        self._supports_mlsd = None
        self._supports_mlst = None

    def connect(self) -> None:
        """
        Establish initial connection to the FTP server.
        Handles authentication, TLS and passive mode setting.
        """
        with self._lock:
            self._connect_internal()

    def _connect_internal(self) -> None:
        """Internal connect without lock - caller must hold lock."""
        try:
            self._ftp = ftplib.FTP_TLS() if self.ftp_config.secure else ftplib.FTP()
            self._ftp.encoding = self.ftp_config.encoding

            logger.debug(
                "Connecting to FTP server %s:%d (secure=%s)",
                self.ftp_config.host,
                self.ftp_config.port,
                self.ftp_config.secure,
            )

            self._ftp.connect(
                host=self.ftp_config.host,
                port=self.ftp_config.port,
                timeout=self.conn_config.timeout_seconds,
            )

            # Login - anonymous if no credentials
            if self.ftp_config.username:
                logger.debug("Logging in as user: %s", self.ftp_config.username)
                self._ftp.login(
                    user=self.ftp_config.username, passwd=self.ftp_config.password or ""
                )
            else:
                logger.debug("Logging in anonymously")
                self._ftp.login()

            # Encrypt the data channel as well as the control channel
            if self.ftp_config.secure:
                self._ftp.prot_p()

            self._ftp.set_pasv(self.ftp_config.passive_mode)
            logger.debug("Passive mode: %s", self.ftp_config.passive_mode)

            self._connected = True
            logger.info("Connected to FTP server %s:%d", self.ftp_config.host, self.ftp_config.port)

            self._probe_capabilities()

        except (ftplib.error_perm, ftplib.error_temp) as e:
            self._connected = False
            self._ftp = None
            logger.error("FTP login failed: %s", e)
            raise PermissionError(f"FTP login failed: {e}") from e
        except TimeoutError as e:
            self._connected = False
            self._ftp = None
            logger.error("Connection timeout: %s", e)
            raise TimeoutError(f"Connection timeout: {e}") from e
        except OSError as e:
            self._connected = False
            self._ftp = None
            logger.error("Connection failed: %s", e)
            raise ConnectionError(f"Connection failed: {e}") from e

    def _probe_capabilities(self) -> None:
        """Probe server capabilities for MLSD and MLST support."""
        if not self._ftp:
            return

        features = []
        try:
            resp = self._ftp.sendcmd("FEAT")
            features = resp.upper().split()
        except ftplib.Error:
            # Server doesn't support FEAT
            pass

        # MLST support implies MLSD (RFC 3659)
        self._supports_mlst = "MLST" in features
        self._supports_mlsd = "MLSD" in features or self._supports_mlst

        if self._supports_mlst:
            try:
                self._ftp.sendcmd(f"OPTS MLST {MLST_FACTS}")
            except ftplib.Error as e:
                logger.debug("OPTS MLST rejected, using default facts: %s", e)

        logger.debug(
            "Server capabilities - MLSD: %s, MLST: %s",
            self._supports_mlsd,
            self._supports_mlst,
        )

    def disconnect(self) -> None:
        """Safely close connection(s)."""
        with self._lock:
            self._disconnect_internal()

    def _disconnect_internal(self) -> None:
        """Internal disconnect without lock - caller must hold lock."""
        if self._ftp:
            try:
                self._ftp.quit()
                logger.debug("FTP connection closed gracefully")
            except Exception as e:
                logger.debug("FTP quit failed, forcing close: %s", e)
                try:
                    self._ftp.close()
                except Exception:
                    pass
            finally:
                self._ftp = None
                self._connected = False

    def _ensure_connected(self) -> None:
        """Ensure connection is active, reconnect if needed. Caller must hold lock."""
        if not self._connected or not self._ftp:
            logger.debug("Connection not active, reconnecting")
            self._connect_internal()
            return

        # Check if connection is still alive with NOOP
        try:
            self._ftp.voidcmd("NOOP")
        except Exception as e:
            logger.debug("Connection lost, reconnecting: %s", e)
            self._disconnect_internal()
            self._connect_internal()

    def _normalize_path(self, path: str) -> str:
        """Ensure path has leading slash and uses forward slashes."""
        path = path.replace("\\", "/")
        if not path.startswith("/"):
            path = "/" + path
        return path

    def _with_retry(self, operation: str, func, *args, **kwargs):
        """
        Execute a function with retry logic.

        Args:
            operation: Description of the operation for logging
            func: Function to execute
            *args, **kwargs: Arguments to pass to the function

        Returns:
            Result of the function

        Raises:
            The last exception if all retries fail
        """
        last_exception = None

        for attempt in range(self.conn_config.retry_attempts):
            try:
                with self._lock:
                    self._ensure_connected()
                    return func(*args, **kwargs)
            except (FileNotFoundError, FileExistsError, PermissionError):
                raise
            except ftplib.error_perm as e:
                # Permanent errors should not be retried
                raise self._translate_ftp_error(e) from e
            except (TimeoutError, EOFError, ftplib.error_temp, ftplib.error_reply, OSError) as e:
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
                    # Force reconnect on next attempt
                    with self._lock:
                        self._disconnect_internal()
            except ftplib.Error as e:
                # error_proto and other malformed replies
                raise OSError(f"{operation} failed: protocol error: {e}") from e

        # All retries exhausted
        logger.error("%s failed after %d attempts", operation, self.conn_config.retry_attempts)
        if isinstance(last_exception, socket.timeout):
            raise TimeoutError(f"{operation} timed out") from last_exception
        raise OSError(f"{operation} failed: {last_exception}") from last_exception

    def _translate_ftp_error(self, error: ftplib.error_perm) -> Exception:
        """Translate FTP permanent errors to standard Python exceptions."""
        error_str = str(error).lower()
        error_code = str(error)[:3]

        if error_code == "550":
            if "exists" in error_str:
                return FileExistsError(str(error))
            elif "permission" in error_str or "denied" in error_str:
                return PermissionError(str(error))
            elif "not empty" in error_str:
                return OSError(str(error))
            else:
                # Default to FileNotFoundError for 550
                return FileNotFoundError(str(error))
        elif error_code == "553":
            return PermissionError(str(error))
        elif error_code == "530":
            return PermissionError(f"Authentication required: {error}")
        else:
            return OSError(str(error))

    def list_dir(self, path: str) -> list[FileStats]:
        """
        List contents of a directory.

        Args:
            path: Absolute FTP path.

        Returns:
            List[FileStats]: List of file/directory objects with metadata.

        Raises:
            FileNotFoundError: If path does not exist.
            PermissionError: If access denied.
        """
        path = self._normalize_path(path)
        logger.debug("Listing directory: %s", path)

        def _list_dir_internal() -> list[FileStats]:
            if self._supports_mlsd:
                return self._list_dir_mlsd(path)
            else:
                return self._list_dir_list(path)

        return self._with_retry(f"list_dir({path})", _list_dir_internal)

    def _list_dir_mlsd(self, path: str) -> list[FileStats]:
        """List directory using MLSD command (modern, structured)."""
        results = []
        for name, facts in self._ftp.mlsd(path):
            if name in (".", "..") or facts.get("type", "").lower() in ("cdir", "pdir"):
                continue
            results.append(self._stats_from_facts(name, facts))

        logger.debug("MLSD listed %d entries in %s", len(results), path)
        return results

    def _stats_from_facts(self, name: str, facts: dict[str, str]) -> FileStats:
        """Build FileStats from MLSD/MLST facts (keys already lowercased)."""
        facts = {key.lower(): value for key, value in facts.items()}
        entry_type = facts.get("type", "").lower()
        is_dir = entry_type in ("dir", "cdir", "pdir")

        # Symlinks: "OS.unix=symlink" or "OS.unix=slink:/target"
        is_link = entry_type.startswith("os.unix=slink") or entry_type.startswith(
            "os.unix=symlink"
        )
        link_target = None
        if is_link and ":" in facts["type"]:
            link_target = facts["type"].split(":", 1)[1] or None

        mode = 0
        if facts.get("unix.mode"):
            try:
                mode = int(facts["unix.mode"], 8)
            except ValueError:
                logger.warning("Failed to parse unix.mode fact: %s", facts["unix.mode"])

        return FileStats(
            name=name,
            size=int(facts.get("size", 0)) if not is_dir else 0,
            mtime=self._parse_mlsd_time(facts.get("modify", "")),
            is_dir=is_dir,
            is_link=is_link,
            link_target=link_target,
            owner=facts.get("unix.owner") or facts.get("unix.uid"),
            group=facts.get("unix.group") or facts.get("unix.gid"),
            mode=mode,
        )

    def _parse_mlsd_time(self, time_str: str) -> datetime:
        """Parse MLSD modify time format (YYYYMMDDHHmmSS or YYYYMMDDHHmmSS.sss)."""
        if not time_str:
            return datetime.now()

        try:
            # Remove fractional seconds if present
            if "." in time_str:
                time_str = time_str.split(".")[0]
            return datetime.strptime(time_str, "%Y%m%d%H%M%S")
        except ValueError:
            logger.warning("Failed to parse MLSD time: %s", time_str)
            return datetime.now()

    def _list_dir_list(self, path: str) -> list[FileStats]:
        """List directory using LIST command (legacy, needs parsing)."""
        lines = []
        self._ftp.cwd(path)
        self._ftp.retrlines("LIST", lines.append)

        results = []
        for line in lines:
            stats = self._parse_list_line(line)
            if stats and stats.name not in (".", ".."):
                results.append(stats)

        logger.debug("LIST listed %d entries in %s", len(results), path)
        return results

    def _parse_list_line(self, line: str) -> FileStats | None:
        """
        Parse a single line from LIST output.
        Handles both Unix and Windows FTP server formats.
        """
        line = line.strip()
        if not line:
            return None

        # Unix format: drwxr-xr-x  2 user group 4096 Dec 10 12:34 filename
        # Windows format: 12-10-20  12:34PM       <DIR>          dirname
        # Windows format: 12-10-20  12:34PM              1234 filename

        parts = line.split()
        if len(parts) < 4:
            return None

        if len(parts[0]) >= 10 and parts[0][0] in "dl-":
            return self._parse_unix_list_line(line)

        if "-" in parts[0] and len(parts[0]) <= 10:
            return self._parse_windows_list_line(parts, line)

        logger.warning("Unknown LIST format: %s", line)
        return None

    def _parse_unix_list_line(self, line: str) -> FileStats | None:
        """Parse Unix-style LIST output, including symlinks and permissions."""
        try:
            # perms, links, owner, group, size, month, day, time/year, name
            perms, _, owner, group, size, month, day, time_or_year, name = line.split(None, 8)
        except ValueError as e:
            logger.warning("Failed to parse Unix LIST line: %s - %s", line, e)
            return None

        is_dir = perms[0] == "d"
        is_link = perms[0] == "l"
        link_target = None
        if is_link and " -> " in name:
            name, link_target = name.split(" -> ", 1)

        try:
            size_value = int(size) if not is_dir else 0
        except ValueError as e:
            logger.warning("Failed to parse Unix LIST line: %s - %s", line, e)
            return None

        return FileStats(
            name=name,
            size=size_value,
            mtime=self._parse_unix_list_time([month, day, time_or_year]),
            is_dir=is_dir,
            is_link=is_link,
            link_target=link_target,
            owner=owner,
            group=group,
            mode=parse_permissions(perms),
        )

    def _parse_unix_list_time(self, time_parts: list[str]) -> datetime:
        """Parse Unix LIST time format (e.g., 'Dec 10 12:34' or 'Dec 10  2020')."""
        if len(time_parts) < 3:
            return datetime.now()

        month_str, day_str, time_or_year = time_parts[0], time_parts[1], time_parts[2]

        try:
            month = MONTHS.get(month_str.lower(), 1)
            day = int(day_str)

            if ":" in time_or_year:
                # Time format - assume current year
                hour, minute = map(int, time_or_year.split(":"))
                year = datetime.now().year
            else:
                # Year format - assume midnight
                year = int(time_or_year)
                hour, minute = 0, 0

            return datetime(year, month, day, hour, minute)
        except ValueError:
            return datetime.now()

    def _parse_windows_list_line(self, parts: list[str], original_line: str) -> FileStats | None:
        """Parse Windows-style LIST output."""
        try:
            # Format: MM-DD-YY  HH:MMPM  <DIR>  dirname
            # Format: MM-DD-YY  HH:MMPM  size  filename
            is_dir = "<DIR>" in parts
            size = 0

            if is_dir:
                name_start_idx = parts.index("<DIR>") + 1
            else:
                size = int(parts[2])
                name_start_idx = 3

            name = " ".join(parts[name_start_idx:])
            mtime = self._parse_windows_list_time(parts[0], parts[1])

            return FileStats(name=name, size=size, mtime=mtime, is_dir=is_dir)
        except (IndexError, ValueError) as e:
            logger.warning("Failed to parse Windows LIST line: %s - %s", original_line, e)
            return None

    def _parse_windows_list_time(self, date_str: str, time_str: str) -> datetime:
        """Parse Windows LIST time format (MM-DD-YY HH:MMAM/PM)."""
        try:
            month, day, year = map(int, date_str.split("-"))
            if year < 100:
                year += 2000 if year < 70 else 1900

            time_str = time_str.upper()
            is_pm = "PM" in time_str
            time_str = time_str.replace("AM", "").replace("PM", "")
            hour, minute = map(int, time_str.split(":"))

            if is_pm and hour != 12:
                hour += 12
            elif not is_pm and hour == 12:
                hour = 0

            return datetime(year, month, day, hour, minute)
        except (ValueError, IndexError):
            return datetime.now()

    def get_file_info(self, path: str) -> FileStats:
        """
        Get metadata for a single file or directory.

        Args:
            path: Absolute FTP path.

        Returns:
            FileStats object.

        Raises:
            FileNotFoundError: If path does not exist.
        """
        path = self._normalize_path(path)
        logger.debug("Getting file info: %s", path)

        def _get_file_info_internal() -> FileStats:
            if self._supports_mlst:
                return self._get_file_info_mlst(path)
            else:
                return self._get_file_info_list(path)

        return self._with_retry(f"get_file_info({path})", _get_file_info_internal)

    def _get_file_info_mlst(self, path: str) -> FileStats:
        """Get file info using MLST command."""
        response = self._ftp.sendcmd(f"MLST {path}")

        # Response format:
        # 250-Listing path
        #  type=file;size=1234;modify=20201210123456; filename
        # 250 End

        for line in response.split("\n"):
            facts_str, _, name = line.strip().partition(" ")
            if "=" not in facts_str or ";" not in facts_str:
                continue

            facts = {}
            for part in facts_str.split(";"):
                if "=" in part:
                    key, value = part.split("=", 1)
                    facts[key.lower()] = value

            name = name.strip().rstrip("/").rsplit("/", 1)[-1] or path.rsplit("/", 1)[-1]
            return self._stats_from_facts(name or "/", facts)

        raise FileNotFoundError(f"Could not parse MLST response for {path}")

    def _get_file_info_list(self, path: str) -> FileStats:
        """Get file info by listing parent directory and finding entry."""
        # Handle root directory specially
        if path == "/":
            return FileStats(name="/", size=0, mtime=datetime.now(), is_dir=True)

        path = path.rstrip("/")
        parent = path.rsplit("/", 1)[0] or "/"
        filename = path.rsplit("/", 1)[1]

        for entry in self._list_dir_list(parent):
            if entry.name == filename:
                return entry

        raise FileNotFoundError(f"File not found: {path}")

    def download(self, path: str, local_path: str) -> None:
        """
        Download a remote file into a local file, replacing its content.

        Args:
            path: Absolute FTP path.
            local_path: Local file to write to.
        """
        path = self._normalize_path(path)
        logger.debug("Downloading %s -> %s", path, local_path)

        def _download_internal() -> None:
            with open(local_path, "wb") as fh:
                self._ftp.retrbinary(f"RETR {path}", fh.write)
            logger.debug("Downloaded %s", path)

        self._with_retry(f"download({path})", _download_internal)

    def upload(self, path: str, local_path: str) -> None:
        """
        Upload a local file, replacing the remote file's content.

        Args:
            path: Absolute FTP path.
            local_path: Local file to read from.
        """
        path = self._normalize_path(path)
        logger.debug("Uploading %s -> %s", local_path, path)

        def _upload_internal() -> None:
            with open(local_path, "rb") as fh:
                self._ftp.storbinary(f"STOR {path}", fh)
            logger.debug("Uploaded %s", path)

        self._with_retry(f"upload({path})", _upload_internal)

    def create_dir(self, path: str) -> None:
        """Create a single directory. The parent must exist."""
        path = self._normalize_path(path)
        logger.debug("Creating directory: %s", path)

        def _create_dir_internal() -> None:
            self._ftp.mkd(path)
            logger.debug("Created directory: %s", path)

        self._with_retry(f"create_dir({path})", _create_dir_internal)

    def delete_file(self, path: str) -> None:
        """Delete a file."""
        path = self._normalize_path(path)
        logger.debug("Deleting file: %s", path)

        def _delete_file_internal() -> None:
            self._ftp.delete(path)
            logger.debug("Deleted file: %s", path)

        self._with_retry(f"delete_file({path})", _delete_file_internal)

    def delete_dir(self, path: str) -> None:
        """Delete a directory (must be empty)."""
        path = self._normalize_path(path)
        logger.debug("Deleting directory: %s", path)

        def _delete_dir_internal() -> None:
            self._ftp.rmd(path)
            logger.debug("Deleted directory: %s", path)

        self._with_retry(f"delete_dir({path})", _delete_dir_internal)

    def rename(self, old_path: str, new_path: str) -> None:
        """Rename or move a file/directory."""
        old_path = self._normalize_path(old_path)
        new_path = self._normalize_path(new_path)
        logger.debug("Renaming: %s -> %s", old_path, new_path)

        def _rename_internal() -> None:
            self._ftp.rename(old_path, new_path)
            logger.debug("Renamed: %s -> %s", old_path, new_path)

        self._with_retry(f"rename({old_path}, {new_path})", _rename_internal)

    def chmod(self, path: str, mode: int) -> None:
        """Change permission bits through SITE CHMOD."""
        path = self._normalize_path(path)
        logger.debug("Changing mode: %s -> %o", path, mode)

        def _chmod_internal() -> None:
            self._ftp.voidcmd(f"SITE CHMOD {mode:o} {path}")
            logger.debug("Changed mode: %s -> %o", path, mode)

        self._with_retry(f"chmod({path})", _chmod_internal)
