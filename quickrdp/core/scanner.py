"""
Directory scan for computer objects.

A ``DirectoryScan`` is a lazy, restartable iterable: every iteration binds to
the controller, walks the result set page by page using the paged-results
control and yields ``DirectoryCandidate`` objects as each page arrives.
Abandoning the iterator between pages unbinds and leaves nothing behind.
Nothing is written to the host registry here.
"""

import logging
from dataclasses import dataclass, field

from ldap3 import NONE, SIMPLE, SUBTREE, Connection, Server
from ldap3.core.exceptions import LDAPBindError, LDAPCommunicationError, LDAPException

from quickrdp.core.errors import ScanError
from quickrdp.core.models import CredentialRecord, DirectoryCandidate

logger = logging.getLogger(__name__)

LDAP_PORT = 389
PAGED_RESULTS_OID = "1.2.840.113556.1.4.319"
ATTRIBUTES = ["dNSHostName", "description", "operatingSystem"]
# invalidCredentials, inappropriateAuthentication, strongerAuthRequired
BIND_RESULT_CODES = {49, 48, 8}


def base_dn_for(domain: str, ou: str | None = None) -> str:
    base = ",".join(f"DC={part}" for part in domain.strip().split(".") if part)
    if not ou or not ou.strip():
        return base
    ou = ou.strip()
    if "dc=" in ou.lower():
        return ou
    if not ou.lower().startswith(("ou=", "cn=")):
        ou = f"OU={ou}"
    return f"{ou},{base}"


def bind_user_for(username: str, domain: str) -> str:
    if "@" in username or "\\" in username:
        return username
    return f"{username}@{domain}"


def computer_filter(os_filter: str = "Windows Server*") -> str:
    if not os_filter:
        return "(&(objectClass=computer)(dNSHostName=*))"
    return f"(&(objectClass=computer)(operatingSystem={os_filter})(dNSHostName=*))"


def _first(value) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return str(value[0]) if value else ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _close(conn: Connection):
    try:
        conn.unbind()
    except LDAPException:
        logger.debug("Unbind of LDAP connection failed", exc_info=True)


def entry_to_candidate(entry: dict) -> DirectoryCandidate | None:
    attrs = entry.get("attributes") or {}
    hostname = _first(attrs.get("dNSHostName")).strip()
    if not hostname:
        logger.debug("Skipping directory entry without dNSHostName: %s", entry.get("dn"))
        return None
    operating_system = _first(attrs.get("operatingSystem")).strip() or None
    return DirectoryCandidate(
        hostname=hostname,
        description=_first(attrs.get("description")).strip(),
        operating_system=operating_system,
    )


class DirectoryScan:
    def __init__(self, domain: str, controller: str, credentials: CredentialRecord,
                 page_size: int = 500, ou: str | None = None,
                 os_filter: str = "Windows Server*", timeout: int = 10):
        if not domain or not domain.strip():
            raise ScanError("Domain name is empty", ScanError.INVALID_INPUT)
        if not controller or not controller.strip():
            raise ScanError("Server name is empty", ScanError.INVALID_INPUT)
        if credentials is None:
            raise ScanError(
                "No stored credentials found. Save your domain credentials first.",
                ScanError.BIND_FAILED,
            )
        if page_size < 1:
            raise ScanError("Page size must be positive", ScanError.INVALID_INPUT)
        self.domain = domain.strip()
        self.controller = controller.strip()
        self.credentials = credentials
        self.page_size = page_size
        self.search_base = base_dn_for(self.domain, ou)
        self.search_filter = computer_filter(os_filter)
        self.timeout = timeout

    def __iter__(self):
        return self._run()

    def _connect(self) -> Connection:
        bind_user = bind_user_for(self.credentials.username, self.domain)
        try:
            server = Server(self.controller, port=LDAP_PORT, get_info=NONE, connect_timeout=self.timeout)
            conn = Connection(
                server,
                user=bind_user,
                password=self.credentials.password,
                authentication=SIMPLE,
                read_only=True,
                receive_timeout=self.timeout,
            )
        except LDAPException as exc:
            raise ScanError(f"Invalid LDAP server {self.controller}: {exc}", ScanError.INVALID_INPUT) from exc

        logger.info("Connecting to ldap://%s:%d", self.controller, LDAP_PORT)
        try:
            conn.open()
        except LDAPException as exc:
            _close(conn)
            raise ScanError(
                f"Failed to connect to LDAP server {self.controller}: {exc}",
                ScanError.NETWORK_UNREACHABLE,
            ) from exc

        logger.info("Binding as %s", bind_user)
        try:
            bound = conn.bind()
        except LDAPCommunicationError as exc:
            _close(conn)
            raise ScanError(
                f"Lost connection to {self.controller} during bind: {exc}",
                ScanError.NETWORK_UNREACHABLE,
            ) from exc
        except LDAPException as exc:
            _close(conn)
            raise ScanError(f"Authenticated LDAP bind failed: {exc}", ScanError.BIND_FAILED) from exc
        if not bound:
            description = (conn.result or {}).get("description", "bind rejected")
            _close(conn)
            raise ScanError(
                f"Authenticated LDAP bind failed: {description}. "
                "Verify the credentials can query the directory.",
                ScanError.BIND_FAILED,
            )
        return conn

    def _page_error(self, conn: Connection, retrieved: int, exc: Exception | None = None) -> ScanError:
        result = conn.result or {}
        detail = str(exc) if exc is not None else result.get("description") or result.get("message") or "unknown error"
        if isinstance(exc, LDAPBindError) or result.get("result") in BIND_RESULT_CODES:
            kind = ScanError.BIND_FAILED
        elif isinstance(exc, LDAPCommunicationError) and retrieved == 0:
            kind = ScanError.NETWORK_UNREACHABLE
        else:
            kind = ScanError.PARTIAL_PAGE_FAILURE
        return ScanError(
            f"LDAP search failed after {retrieved} result(s): {detail}",
            kind,
            retrieved=retrieved,
        )

    def _run(self):
        conn = self._connect()
        retrieved = 0
        pages = 0
        cookie = None
        logger.info("Searching %s with %s", self.search_base, self.search_filter)
        try:
            while True:
                try:
                    ok = conn.search(
                        self.search_base,
                        self.search_filter,
                        search_scope=SUBTREE,
                        attributes=ATTRIBUTES,
                        paged_size=self.page_size,
                        paged_cookie=cookie,
                    )
                except LDAPException as exc:
                    raise self._page_error(conn, retrieved, exc) from exc
                if not ok and (conn.result or {}).get("result", 0) != 0:
                    raise self._page_error(conn, retrieved)

                pages += 1
                for entry in conn.response or []:
                    if entry.get("type") != "searchResEntry":
                        continue
                    candidate = entry_to_candidate(entry)
                    if candidate is None:
                        continue
                    retrieved += 1
                    yield candidate

                controls = (conn.result or {}).get("controls") or {}
                cookie = controls.get(PAGED_RESULTS_OID, {}).get("value", {}).get("cookie")
                if not cookie:
                    break
            logger.info("Directory scan finished: %d candidates in %d page(s)", retrieved, pages)
        finally:
            _close(conn)


@dataclass
class ScanOutcome:
    candidates: list[DirectoryCandidate] = field(default_factory=list)
    error: ScanError | None = None


def collect(scan, on_candidate=None) -> ScanOutcome:
    """Drain a scan, keeping whatever arrived before a terminal error."""
    outcome = ScanOutcome()
    try:
        for candidate in scan:
            outcome.candidates.append(candidate)
            if on_candidate:
                on_candidate(candidate)
    except ScanError as exc:
        logger.warning("Scan ended with %s after %d candidates: %s", exc.kind, len(outcome.candidates), exc)
        outcome.error = exc
    return outcome
