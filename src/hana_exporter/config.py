"""
Credential resolution.

Turns either the DATA_SOURCE_NAME environment variable or the [client]
section of a hana.cnf file into a ConnectionDescriptor. Any problem here
is fatal: without a reachable database the exporter has nothing to do.
"""

from __future__ import annotations

import configparser
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Mapping, Optional

log = logging.getLogger(__name__)

DSN_ENV_VAR = "DATA_SOURCE_NAME"
DEFAULT_HANA_CNF = os.path.join(os.path.expanduser("~"), ".hana", "hana.cnf")
DEFAULT_CONNECT_TIMEOUT = 10
DEFAULT_QUERY_TIMEOUT = 30

# user:password@host:port -- the password may itself contain ':' or '@'
_DSN_RE = re.compile(r"^(?P<user>[^:@]+):(?P<password>.+)@(?P<host>[^@:]+):(?P<port>\d+)$")

_TRUE = {"1", "yes", "true", "on"}
_FALSE = {"0", "no", "false", "off"}


class ConfigError(Exception):
    """Credentials could not be resolved."""


@dataclass(frozen=True)
class ConnectionDescriptor:
    """How to reach the HANA instance. Read-only once resolved."""

    user: str
    password: str = field(repr=False)
    host: str
    port: int

    # Optional extensions, not part of the DSN
    timeout: int = DEFAULT_CONNECT_TIMEOUT
    query_timeout: int = DEFAULT_QUERY_TIMEOUT
    encrypt: bool = False
    validate_certificate: bool = True
    trust_store: Optional[str] = None
    server_name: Optional[str] = None

    @property
    def dsn(self) -> str:
        return f"{self.user}:{self.password}@{self.host}:{self.port}"

    @property
    def address(self) -> str:
        """host:port, safe to log."""
        return f"{self.host}:{self.port}"

    @classmethod
    def from_dsn(cls, dsn: str) -> "ConnectionDescriptor":
        match = _DSN_RE.match(dsn.strip())
        if not match:
            raise ConfigError(f"{DSN_ENV_VAR} must look like user:password@host:port")
        port = int(match.group("port"))
        _check_port(port, DSN_ENV_VAR)
        return cls(
            user=match.group("user"),
            password=match.group("password"),
            host=match.group("host"),
            port=port,
        )


def _check_port(port: int, source: str):
    if not 0 < port < 65536:
        raise ConfigError(f"missing host or port under [client] in {source}")


def _flag(section: configparser.SectionProxy, key: str, default: bool, source: str) -> bool:
    if key not in section:
        return default
    raw = section[key]
    # Keys with no value at all (HANA-style boolean keys) mean "on"
    if raw is None:
        return True
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ConfigError(f"invalid boolean for {key} under [client] in {source}: {raw!r}")


def _seconds(section: configparser.SectionProxy, key: str, default: int, source: str) -> int:
    raw = section.get(key)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        value = 0
    if value <= 0:
        raise ConfigError(f"invalid {key} under [client] in {source}: {raw!r}")
    return value


def parse_hana_cnf(text: str, source: str = "<string>") -> ConnectionDescriptor:
    """Parse the contents of a hana.cnf file."""
    parser = configparser.ConfigParser(allow_no_value=True, interpolation=None)
    try:
        parser.read_string(text, source=source)
    except configparser.Error as exc:
        raise ConfigError(f"failed reading ini file: {exc}") from exc

    if not parser.has_section("client"):
        raise ConfigError(f"missing user or password under [client] in {source}")
    client = parser["client"]

    user = (client.get("user") or "").strip()
    password = client.get("password") or ""
    if not user or not password:
        raise ConfigError(f"missing user or password under [client] in {source}")

    host = (client.get("host") or "").strip()
    try:
        port = int((client.get("port") or "").strip())
    except ValueError:
        port = None
    if not host or port is None:
        raise ConfigError(f"missing host or port under [client] in {source}")
    _check_port(port, source)

    timeout = _seconds(client, "timeout", DEFAULT_CONNECT_TIMEOUT, source)
    query_timeout = _seconds(client, "querytimeout", DEFAULT_QUERY_TIMEOUT, source)

    skip_verify = _flag(client, "tlsinsecureskipverify", False, source)

    return ConnectionDescriptor(
        user=user,
        password=password,
        host=host,
        port=port,
        timeout=timeout,
        query_timeout=query_timeout,
        encrypt=_flag(client, "encrypt", False, source),
        validate_certificate=not skip_verify,
        trust_store=client.get("tlsrootcafile") or None,
        server_name=client.get("tlsservername") or None,
    )


def load_hana_cnf(path: str) -> ConnectionDescriptor:
    try:
        with open(path, encoding="utf-8") as f:
            text = f.read()
    except OSError as exc:
        raise ConfigError(f"failed reading ini file: {exc}") from exc
    return parse_hana_cnf(text, source=path)


def resolve_connection(
    cnf_path: str = DEFAULT_HANA_CNF,
    environ: Optional[Mapping[str, str]] = None,
) -> ConnectionDescriptor:
    """DATA_SOURCE_NAME wins; otherwise read the [client] section of cnf_path."""
    environ = os.environ if environ is None else environ

    dsn = environ.get(DSN_ENV_VAR, "")
    if dsn:
        log.debug("Using credentials from %s", DSN_ENV_VAR)
        return ConnectionDescriptor.from_dsn(dsn)

    log.debug("Reading credentials from %s", cnf_path)
    return load_hana_cnf(cnf_path)
