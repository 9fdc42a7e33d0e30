"""
Tests for quickrdp.core.scanner with a mocked ldap3 connection.
"""

import pytest
from ldap3.core.exceptions import LDAPBindError, LDAPCommunicationError, LDAPInvalidPortError

from quickrdp.core.errors import ScanError
from quickrdp.core.models import CredentialRecord, CredentialScope
from quickrdp.core.scanner import (
    PAGED_RESULTS_OID,
    DirectoryScan,
    base_dn_for,
    bind_user_for,
    collect,
    computer_filter,
    entry_to_candidate,
)


def computer(name, os_name="Windows Server 2022", description=None):
    return {
        "type": "searchResEntry",
        "dn": f"CN={name},OU=Servers,DC=corp,DC=local",
        "attributes": {
            "dNSHostName": f"{name}.corp.local",
            "operatingSystem": os_name,
            "description": [description] if description else [],
        },
    }


class FakeConnection:
    """
    Minimal ldap3 ``Connection`` replacement.

    ``pages`` holds one item per search call: ``(entries, cookie)`` for a
    successful page, a dict for a failed result, or an exception to raise.
    """

    def __init__(self, pages, bind_result=True):
        self.pages = list(pages)
        self.bind_result = bind_result
        self.result = {}
        self.response = []
        self.searches = []
        self.unbound = False

    def open(self):
        pass

    def bind(self):
        if isinstance(self.bind_result, Exception):
            raise self.bind_result
        if not self.bind_result:
            self.result = {"result": 49, "description": "invalidCredentials"}
        return self.bind_result

    def search(self, search_base, search_filter, **kwargs):
        self.searches.append((search_base, search_filter, kwargs))
        page = self.pages.pop(0)
        if isinstance(page, Exception):
            raise page
        if isinstance(page, dict):
            self.result = page
            self.response = []
            return False
        entries, cookie = page
        self.response = entries
        self.result = {
            "result": 0,
            "description": "success",
            "controls": {PAGED_RESULTS_OID: {"criticality": False, "value": {"size": 0, "cookie": cookie}}},
        }
        return True

    def unbind(self):
        self.unbound = True


@pytest.fixture
def credentials():
    return CredentialRecord(CredentialScope.global_(), "alice", b"pw")


@pytest.fixture
def ldap(mocker):
    """Patch Server/Connection; set ``.return_value`` or ``.side_effect`` on the returned mock."""
    mocker.patch("quickrdp.core.scanner.Server")
    return mocker.patch("quickrdp.core.scanner.Connection")


def scan_for(credentials, **kwargs):
    return DirectoryScan("corp.local", "dc01.corp.local", credentials, **kwargs)


class TestHelpers:

    def test_base_dn_from_domain(self):
        assert base_dn_for("corp.local") == "DC=corp,DC=local"
        assert base_dn_for("eu.corp.example.com") == "DC=eu,DC=corp,DC=example,DC=com"

    @pytest.mark.parametrize("ou", ["Servers", "OU=Servers", " OU=Servers "])
    def test_base_dn_with_ou(self, ou):
        assert base_dn_for("corp.local", ou) == "OU=Servers,DC=corp,DC=local"

    def test_full_dn_ou_used_as_is(self):
        dn = "OU=Servers,OU=EU,DC=corp,DC=local"
        assert base_dn_for("corp.local", dn) == dn

    def test_bind_user(self):
        assert bind_user_for("alice", "corp.local") == "alice@corp.local"
        assert bind_user_for("alice@corp.local", "corp.local") == "alice@corp.local"
        assert bind_user_for("CORP\\alice", "corp.local") == "CORP\\alice"

    def test_filter(self):
        assert computer_filter() == (
            "(&(objectClass=computer)(operatingSystem=Windows Server*)(dNSHostName=*))"
        )
        assert computer_filter("") == "(&(objectClass=computer)(dNSHostName=*))"

    def test_entry_without_dns_name_is_skipped(self):
        assert entry_to_candidate({"attributes": {"dNSHostName": []}}) is None

    def test_entry_to_candidate(self):
        candidate = entry_to_candidate(computer("db01", description="Primary DB"))
        assert candidate.hostname == "db01.corp.local"
        assert candidate.description == "Primary DB"
        assert candidate.operating_system == "Windows Server 2022"


class TestValidation:

    def test_empty_domain(self, credentials):
        with pytest.raises(ScanError) as exc_info:
            DirectoryScan(" ", "dc01", credentials)
        assert exc_info.value.kind == ScanError.INVALID_INPUT

    def test_empty_server(self, credentials):
        with pytest.raises(ScanError) as exc_info:
            DirectoryScan("corp.local", "", credentials)
        assert exc_info.value.kind == ScanError.INVALID_INPUT

    def test_missing_credentials(self):
        with pytest.raises(ScanError) as exc_info:
            DirectoryScan("corp.local", "dc01", None)
        assert exc_info.value.kind == ScanError.BIND_FAILED


class TestPaging:

    def test_pages_are_followed_until_cookie_is_empty(self, ldap, credentials):
        conn = FakeConnection([
            ([computer("a"), computer("b")], b"page2"),
            ([computer("c")], b""),
        ])
        ldap.return_value = conn

        names = [c.hostname for c in scan_for(credentials, page_size=2)]

        assert names == ["a.corp.local", "b.corp.local", "c.corp.local"]
        assert [s[2]["paged_cookie"] for s in conn.searches] == [None, b"page2"]
        assert all(s[2]["paged_size"] == 2 for s in conn.searches)
        assert conn.searches[0][0] == "DC=corp,DC=local"
        assert conn.unbound

    def test_binds_as_user_at_domain_read_only(self, ldap, credentials):
        ldap.return_value = FakeConnection([([], None)])

        assert list(scan_for(credentials)) == []

        kwargs = ldap.call_args.kwargs
        assert kwargs["user"] == "alice@corp.local"
        assert kwargs["password"] == "pw"
        assert kwargs["read_only"] is True

    def test_references_and_nameless_entries_are_ignored(self, ldap, credentials):
        nameless = computer("x")
        nameless["attributes"]["dNSHostName"] = []
        ldap.return_value = FakeConnection([
            ([{"type": "searchResRef", "uri": ["ldap://other"]}, nameless, computer("a")], None),
        ])

        assert [c.hostname for c in scan_for(credentials)] == ["a.corp.local"]

    def test_scan_is_restartable(self, ldap, credentials):
        ldap.side_effect = [
            FakeConnection([([computer("a")], None)]),
            FakeConnection([([computer("a")], None)]),
        ]
        scan = scan_for(credentials)

        assert [c.hostname for c in scan] == [c.hostname for c in scan] == ["a.corp.local"]
        assert ldap.call_count == 2

    def test_abandoned_scan_unbinds(self, ldap, credentials):
        conn = FakeConnection([([computer("a"), computer("b")], b"more"), ([computer("c")], None)])
        ldap.return_value = conn

        it = iter(scan_for(credentials))
        next(it)
        it.close()

        assert conn.unbound
        assert len(conn.searches) == 1


class TestFailures:

    def test_bind_error_after_ten_candidates_keeps_them(self, ldap, credentials):
        first_page = [computer(f"srv{i:02d}") for i in range(10)]
        ldap.return_value = FakeConnection([
            (first_page, b"next"),
            {"result": 49, "description": "invalidCredentials", "message": "80090308: LdapErr"},
        ])
        seen = []

        outcome = collect(scan_for(credentials, page_size=10), on_candidate=seen.append)

        assert len(outcome.candidates) == 10
        assert seen == outcome.candidates
        assert outcome.error.kind == ScanError.BIND_FAILED
        assert outcome.error.retrieved == 10

    def test_iterator_yields_before_raising(self, ldap, credentials):
        ldap.return_value = FakeConnection([
            ([computer(f"srv{i:02d}") for i in range(10)], b"next"),
            {"result": 49, "description": "invalidCredentials"},
        ])
        it = iter(scan_for(credentials))

        got = [next(it) for _ in range(10)]
        with pytest.raises(ScanError) as exc_info:
            next(it)

        assert len(got) == 10
        assert exc_info.value.kind == ScanError.BIND_FAILED

    def test_connection_lost_mid_scan_is_partial_page_failure(self, ldap, credentials):
        conn = FakeConnection([([computer("a")], b"next"), LDAPCommunicationError("connection reset")])
        ldap.return_value = conn

        outcome = collect(scan_for(credentials))

        assert [c.hostname for c in outcome.candidates] == ["a.corp.local"]
        assert outcome.error.kind == ScanError.PARTIAL_PAGE_FAILURE
        assert outcome.error.retrieved == 1
        assert conn.unbound

    def test_server_error_result_is_partial_page_failure(self, ldap, credentials):
        ldap.return_value = FakeConnection([
            ([computer("a")], b"next"),
            {"result": 51, "description": "busy"},
        ])

        outcome = collect(scan_for(credentials))
        assert outcome.error.kind == ScanError.PARTIAL_PAGE_FAILURE
        assert "busy" in str(outcome.error)

    def test_unreachable_controller(self, ldap, credentials, mocker):
        conn = FakeConnection([])
        conn.open = mocker.Mock(side_effect=LDAPCommunicationError("timed out"))
        ldap.return_value = conn

        outcome = collect(scan_for(credentials))

        assert outcome.candidates == []
        assert outcome.error.kind == ScanError.NETWORK_UNREACHABLE
        assert conn.unbound

    def test_lost_before_first_page_is_network_unreachable(self, ldap, credentials):
        ldap.return_value = FakeConnection([LDAPCommunicationError("reset")])

        outcome = collect(scan_for(credentials))
        assert outcome.error.kind == ScanError.NETWORK_UNREACHABLE

    def test_rejected_bind(self, ldap, credentials):
        conn = FakeConnection([], bind_result=False)
        ldap.return_value = conn

        outcome = collect(scan_for(credentials))

        assert outcome.error.kind == ScanError.BIND_FAILED
        assert "invalidCredentials" in str(outcome.error)
        assert conn.unbound

    def test_bind_exception(self, ldap, credentials):
        conn = FakeConnection([], bind_result=LDAPBindError("bad password"))
        ldap.return_value = conn

        outcome = collect(scan_for(credentials))
        assert outcome.error.kind == ScanError.BIND_FAILED
        assert conn.unbound

    def test_bind_lost_connection_closes_it(self, ldap, credentials):
        conn = FakeConnection([], bind_result=LDAPCommunicationError("socket closed"))
        ldap.return_value = conn

        outcome = collect(scan_for(credentials))

        assert outcome.error.kind == ScanError.NETWORK_UNREACHABLE
        assert conn.unbound

    def test_invalid_server_definition_is_reported(self, ldap, credentials, mocker):
        mocker.patch("quickrdp.core.scanner.Server", side_effect=LDAPInvalidPortError("port must be an integer"))

        outcome = collect(scan_for(credentials))

        assert outcome.candidates == []
        assert outcome.error.kind == ScanError.INVALID_INPUT
        assert "port must be an integer" in str(outcome.error)
        ldap.assert_not_called()

    def test_connection_construction_error_is_reported(self, ldap, credentials):
        ldap.side_effect = LDAPInvalidPortError("bad port")

        outcome = collect(scan_for(credentials))
        assert outcome.error.kind == ScanError.INVALID_INPUT
