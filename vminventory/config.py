import logging
import os
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote, unquote, urlsplit

from vminventory.errors import ParseError

logger = logging.getLogger(__name__)

# --- Environment ---
ENV_URL = "GOVMOMI_URL"
ENV_USERNAME = "GOVMOMI_USERNAME"
ENV_PASSWORD = "GOVMOMI_PASSWORD"
ENV_INSECURE = "GOVMOMI_INSECURE"
ENV_PERSIST_SESSION = "GOVMOMI_PERSIST_SESSION"
ENV_HOME = "GOVMOMI_HOME"

DEFAULT_PATH = "/sdk"
DEFAULT_PORTS = {"https": 443, "http": 80}


def get_env_string(name, default=""):
    value = os.getenv(name)
    if not value:
        return default
    return value


def get_env_bool(name, default=False):
    """Read a boolean flag; only the first character counts (t, y or 1 is true)."""
    value = os.getenv(name)
    if not value:
        return default
    return value[:1].lower() in ("t", "y", "1")


# --- Connection target ---
@dataclass
class ConnectionTarget:
    scheme: str
    host: str
    port: int
    path: str = DEFAULT_PATH
    username: Optional[str] = None
    password: Optional[str] = None
    insecure: bool = False

    def url(self, redact=True):
        """Render the target back into a URL. The password is masked unless redact is False."""
        netloc = f"[{self.host}]" if ":" in self.host else self.host
        if self.port != DEFAULT_PORTS.get(self.scheme):
            netloc = f"{netloc}:{self.port}"
        if self.username is not None:
            userinfo = quote(self.username, safe="")
            if self.password is not None and not redact:
                userinfo = f"{userinfo}:{quote(self.password, safe='')}"
            netloc = f"{userinfo}@{netloc}"
        return f"{self.scheme}://{netloc}{self.path}"


@dataclass(frozen=True)
class CredentialOverride:
    username: Optional[str] = None
    password: Optional[str] = None

    @classmethod
    def from_env(cls):
        return cls(
            username=get_env_string(ENV_USERNAME) or None,
            password=get_env_string(ENV_PASSWORD) or None,
        )


def parse_url(raw_url):
    """Parse an ESX or vCenter URL. A bare host gets https:// and an empty path gets /sdk."""
    text = (raw_url or "").strip()
    if not text:
        raise ParseError("empty URL")
    if "://" not in text:
        text = f"https://{text}"

    try:
        parts = urlsplit(text)
        port = parts.port
    except ValueError as e:
        raise ParseError(f"invalid URL {raw_url!r}: {e}") from e

    scheme = parts.scheme.lower()
    if scheme not in DEFAULT_PORTS:
        raise ParseError(f"invalid URL {raw_url!r}: unsupported scheme {parts.scheme!r}")
    if not parts.hostname:
        raise ParseError(f"invalid URL {raw_url!r}: missing host")

    return ConnectionTarget(
        scheme=scheme,
        host=parts.hostname,
        port=port or DEFAULT_PORTS[scheme],
        path=parts.path or DEFAULT_PATH,
        username=unquote(parts.username) if parts.username is not None else None,
        password=unquote(parts.password) if parts.password is not None else None,
    )


def apply_override(target, overrides):
    """Replace embedded credentials with the override values, username first."""
    if overrides.username:
        # an embedded password, if any, is kept
        target.username = overrides.username

    if overrides.password:
        if target.username is None:
            target.username = ""
        target.password = overrides.password

    return target


def resolve(raw_url, overrides=None, insecure=False):
    if overrides is None:
        overrides = CredentialOverride.from_env()
    target = parse_url(raw_url)
    apply_override(target, overrides)
    target.insecure = insecure
    logger.debug(f"Resolved connection target {target.url()} (insecure={insecure})")
    return target
