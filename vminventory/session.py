import atexit
import hashlib
import json
import logging
import os
import ssl
from pathlib import Path

from pyVim import connect
from pyVmomi import vim

from vminventory.config import ENV_HOME, get_env_string
from vminventory.errors import AuthError

logger = logging.getLogger(__name__)

DEFAULT_HOME = "~/.govmomi"


# --- Session cache ---
class SessionCache:
    """
    Keeps one session cookie per target on disk so the next invocation can
    skip the login. Entries are keyed by the URL without its password plus
    the insecure flag; the password itself is never written.
    """

    def __init__(self, root=None):
        if root is None:
            root = get_env_string(ENV_HOME, DEFAULT_HOME)
        self.directory = Path(root).expanduser() / "sessions"

    def key(self, target):
        raw = f"{target.url()}#insecure={str(target.insecure).lower()}"
        return hashlib.sha1(raw.encode("utf-8")).hexdigest()

    def path(self, target):
        return self.directory / self.key(target)

    def load(self, target):
        path = self.path(target)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                entry = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable session cache {path}: {e}")
            return None
        if not isinstance(entry, dict) or not entry.get("cookie"):
            logger.warning(f"Ignoring malformed session cache {path}")
            return None
        return entry["cookie"]

    def save(self, target, cookie):
        if not cookie:
            return
        path = self.path(target)
        try:
            self.directory.mkdir(mode=0o700, parents=True, exist_ok=True)
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump({"url": target.url(), "cookie": cookie}, f)
            logger.debug(f"Saved session for {target.url()} to {path}")
        except OSError as e:
            logger.warning(f"Could not save session cache {path}: {e}")

    def remove(self, target):
        try:
            self.path(target).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove session cache {self.path(target)}: {e}")


# --- Connect ---
def _ssl_context(insecure):
    if insecure:
        ssl_ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        ssl_ctx.check_hostname = False
        ssl_ctx.verify_mode = ssl.CERT_NONE
        return ssl_ctx
    return ssl.create_default_context()


def _fault_message(exc):
    return getattr(exc, "msg", None) or str(exc) or exc.__class__.__name__


def _session_cookie(si):
    stub = si._stub
    return getattr(getattr(stub, "soapStub", stub), "cookie", None)


def _stub_port(target):
    # pyVmomi selects plain http through a negative port
    return -target.port if target.scheme == "http" else target.port


def _service_instance(stub):
    return vim.ServiceInstance("ServiceInstance", stub)


def _resume_session(target, cookie, timeout):
    """Attach a cached cookie to a new stub. Returns None when the session has expired."""
    try:
        stub = connect.SmartStubAdapter(
            host=target.host,
            port=_stub_port(target),
            path=target.path,
            sslContext=_ssl_context(target.insecure),
            httpConnectionTimeout=timeout,
        )
        stub.cookie = cookie
        si = _service_instance(stub)
        current = si.content.sessionManager.currentSession
    except vim.fault.NotAuthenticated:
        return None
    except Exception as e:
        raise AuthError(f"cannot connect to {target.host}: {_fault_message(e)}") from e

    if current is None:
        return None
    logger.info(f"Reusing session of {current.userName} on {target.host}")
    return si


def _login(target, timeout):
    if not target.username:
        raise AuthError(
            f"no username for {target.host}: embed it in the URL or set GOVMOMI_USERNAME"
        )
    try:
        si = connect.SmartConnect(
            protocol=target.scheme,
            host=target.host,
            port=target.port,
            path=target.path,
            user=target.username,
            pwd=target.password or "",
            sslContext=_ssl_context(target.insecure),
            httpConnectionTimeout=timeout,
        )
    except vim.fault.InvalidLogin as e:
        raise AuthError(f"cannot log in to {target.host} as {target.username}: {_fault_message(e)}") from e
    except Exception as e:
        raise AuthError(f"cannot connect to {target.host}: {_fault_message(e)}") from e
    logger.info(f"Connected to {target.host} as {target.username}")
    return si


def acquire_client(target, timeout=None, cache=None):
    """
    Return an authenticated ServiceInstance for target.

    With a cache the stored session is tried first and a fresh login is
    written back; without one the session is logged out at exit.
    """
    if target.insecure:
        logger.warning(f"SSL certificate verification is disabled for {target.host}.")

    if cache is not None:
        cookie = cache.load(target)
        if cookie:
            si = _resume_session(target, cookie, timeout)
            if si is not None:
                return si
            logger.info(f"Cached session for {target.host} has expired, logging in again")
            cache.remove(target)

    si = _login(target, timeout)
    if cache is not None:
        cache.save(target, _session_cookie(si))
    else:
        atexit.register(connect.Disconnect, si)
    return si
