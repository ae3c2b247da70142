import configparser
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

TRUE_VALUES = ("true", "1", "yes")


@dataclass
class FTPConfig:
    host: str
    port: int = 21
    username: str | None = None
    password: str | None = None
    passive_mode: bool = True
    encoding: str = "utf-8"
    secure: bool = False  # FTPS (FTP over TLS)
    path: str = "/"  # Base path all file paths are relative to
    visible_password: bool = False  # Show password in rendered URLs


@dataclass
class SSHConfig:
    host: str
    port: int = 22
    username: str | None = None
    password: str | None = None
    key_file: str | None = None  # Path to SSH private key
    key_passphrase: str | None = None  # Passphrase for encrypted keys
    use_agent: bool = True  # Try SSH agent for auth
    encoding: str = "utf-8"
    path: str = "/"
    visible_password: bool = False


@dataclass
class CacheConfig:
    enabled: bool = False  # Off: every metadata query hits the server
    metadata_ttl_seconds: int = 60
    max_entries: int = 1024


@dataclass
class ConnectionConfig:
    timeout_seconds: int = 30
    retry_attempts: int = 3
    retry_delay_seconds: float = 1
    keepalive_interval_seconds: int = 60


@dataclass
class StagingConfig:
    directory: str = field(default_factory=tempfile.gettempdir)
    prefix: str = "ftp_"


@dataclass
class LogConfig:
    level: str = "INFO"
    file: str = "ftp-vfs.log"
    console: bool = True


@dataclass
class AppConfig:
    ftp: FTPConfig
    cache: CacheConfig
    connection: ConnectionConfig
    staging: StagingConfig
    logging: LogConfig
    protocol: str = "ftp"  # "ftp" or "sftp" (ftps is ftp with secure=True)
    ssh: SSHConfig | None = None


def _read_bool(section: configparser.SectionProxy, key: str, default: bool) -> bool:
    value = section.get(key)
    if not value:
        return default
    return value.lower() in TRUE_VALUES


def _read_int(section: configparser.SectionProxy, key: str, default: int) -> int:
    value = section.get(key)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(
            f"Invalid {key} value in config: '{value}' - must be an integer"
        ) from None


def _read_float(section: configparser.SectionProxy, key: str, default: float) -> float:
    value = section.get(key)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(
            f"Invalid {key} value in config: '{value}' - must be a number"
        ) from None


def load_config(config_path: str | None = None, **overrides) -> AppConfig:
    """
    Load configuration from an INI file and/or keyword overrides.
    Keyword overrides take precedence over the config file.

    Args:
        config_path: Path to the INI configuration file.
        **overrides: Key-value overrides (host, port, username, password,
            protocol, secure, path, key_file, key_passphrase, log_level).

    Returns:
        AppConfig: The populated configuration object.

    Raises:
        FileNotFoundError: If config_path is provided but does not exist.
        ValueError: If the host is missing or a numeric value is invalid.
    """
    # Initialize with defaults
    ftp_config = {
        "host": None,
        "port": 21,
        "username": None,
        "password": None,
        "passive_mode": True,
        "encoding": "utf-8",
        "secure": False,
        "path": "/",
        "visible_password": False,
    }
    ssh_config = {
        "host": None,
        "port": 22,
        "username": None,
        "password": None,
        "key_file": None,
        "key_passphrase": None,
        "use_agent": True,
        "encoding": "utf-8",
        "path": "/",
        "visible_password": False,
    }
    cache_config = {
        "enabled": False,
        "metadata_ttl_seconds": 60,
        "max_entries": 1024,
    }
    connection_config = {
        "timeout_seconds": 30,
        "retry_attempts": 3,
        "retry_delay_seconds": 1,
        "keepalive_interval_seconds": 60,
    }
    staging_config = {
        "directory": tempfile.gettempdir(),
        "prefix": "ftp_",
    }
    log_config = {
        "level": "INFO",
        "file": "ftp-vfs.log",
        "console": True,
    }
    protocol = "ftp"

    # Parse INI file if provided
    if config_path is not None:
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        parser = configparser.ConfigParser()
        parser.read(config_file, encoding="utf-8")

        # Load [ftp] and [ssh] sections, they share most keys
        for name, target, default_port in (
            ("ftp", ftp_config, 21),
            ("ssh", ssh_config, 22),
        ):
            if not parser.has_section(name):
                continue
            section = parser[name]
            for key in ("host", "username", "password", "encoding", "path"):
                if section.get(key):
                    target[key] = section.get(key)
            target["port"] = _read_int(section, "port", default_port)
            target["visible_password"] = _read_bool(section, "visible_password", False)
            if name == "ftp":
                target["passive_mode"] = _read_bool(section, "passive_mode", True)
                target["secure"] = _read_bool(section, "secure", False)
            else:
                for key in ("key_file", "key_passphrase"):
                    if section.get(key):
                        target[key] = section.get(key)
                target["use_agent"] = _read_bool(section, "use_agent", True)

        # Load [cache] section
        if parser.has_section("cache"):
            cache_section = parser["cache"]
            cache_config["enabled"] = _read_bool(cache_section, "enabled", False)
            cache_config["metadata_ttl_seconds"] = _read_int(
                cache_section, "metadata_ttl_seconds", 60
            )
            cache_config["max_entries"] = _read_int(cache_section, "max_entries", 1024)

        # Load [connection] section
        if parser.has_section("connection"):
            conn_section = parser["connection"]
            connection_config["timeout_seconds"] = _read_int(conn_section, "timeout_seconds", 30)
            connection_config["retry_attempts"] = _read_int(conn_section, "retry_attempts", 3)
            connection_config["retry_delay_seconds"] = _read_float(
                conn_section, "retry_delay_seconds", 1
            )
            connection_config["keepalive_interval_seconds"] = _read_int(
                conn_section, "keepalive_interval_seconds", 60
            )

        # Load [staging] section
        if parser.has_section("staging"):
            staging_section = parser["staging"]
            if staging_section.get("directory"):
                staging_config["directory"] = staging_section.get("directory")
            if staging_section.get("prefix"):
                staging_config["prefix"] = staging_section.get("prefix")

        # Load [logging] section
        if parser.has_section("logging"):
            log_section = parser["logging"]
            if log_section.get("level"):
                log_config["level"] = log_section.get("level")
            if log_section.get("file") is not None:
                log_config["file"] = log_section.get("file")
            log_config["console"] = _read_bool(log_section, "console", True)

        if parser.has_section("general") and parser["general"].get("protocol"):
            protocol = parser["general"]["protocol"].lower()

    # Keyword overrides take precedence over the file
    if overrides.get("protocol") is not None:
        protocol = overrides["protocol"].lower()
    if overrides.get("secure"):
        protocol = "ftps"

    target = ssh_config if protocol == "sftp" else ftp_config
    for key in ("host", "path"):
        if overrides.get(key) is not None:
            target[key] = overrides[key]
    if overrides.get("port") is not None:
        target["port"] = int(overrides["port"])
    for key in ("username", "password"):
        if overrides.get(key) is not None:
            target[key] = overrides[key] or None
    for key in ("key_file", "key_passphrase"):
        if overrides.get(key) is not None:
            ssh_config[key] = overrides[key]
    if overrides.get("log_level") is not None:
        log_config["level"] = overrides["log_level"].upper()

    if protocol not in ("ftp", "ftps", "sftp"):
        raise ValueError(f"Unsupported protocol: {protocol}")

    # Validate required fields
    if not target["host"]:
        raise ValueError("Missing required configuration fields: host")

    # Handle protocol normalization (ftps sets secure flag on FTP)
    if protocol == "ftps":
        ftp_config["secure"] = True
        protocol = "ftp"

    ssh_obj = None
    if protocol == "sftp":
        ssh_obj = SSHConfig(**ssh_config)

    return AppConfig(
        ftp=FTPConfig(
            host=ftp_config["host"] or "",
            port=ftp_config["port"],
            username=ftp_config["username"],
            password=ftp_config["password"],
            passive_mode=ftp_config["passive_mode"],
            encoding=ftp_config["encoding"],
            secure=ftp_config["secure"],
            path=ftp_config["path"],
            visible_password=ftp_config["visible_password"],
        ),
        cache=CacheConfig(
            enabled=cache_config["enabled"],
            metadata_ttl_seconds=cache_config["metadata_ttl_seconds"],
            max_entries=cache_config["max_entries"],
        ),
        connection=ConnectionConfig(
            timeout_seconds=connection_config["timeout_seconds"],
            retry_attempts=connection_config["retry_attempts"],
            retry_delay_seconds=connection_config["retry_delay_seconds"],
            keepalive_interval_seconds=connection_config["keepalive_interval_seconds"],
        ),
        staging=StagingConfig(
            directory=staging_config["directory"],
            prefix=staging_config["prefix"],
        ),
        logging=LogConfig(
            level=log_config["level"],
            file=log_config["file"],
            console=log_config["console"],
        ),
        protocol=protocol,
        ssh=ssh_obj,
    )
