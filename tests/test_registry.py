"""
Tests for quickrdp.core.registry.
"""

import threading

import pytest

from quickrdp.core.errors import DuplicateHost, RegistryError
from quickrdp.core.models import NO_QUERY, DirectoryCandidate, Host
from quickrdp.core.registry import HostRegistry, read_hosts_csv, write_hosts_csv


@pytest.fixture
def registry(paths):
    reg = HostRegistry(paths.hosts_file)
    reg.load()
    return reg


def _names(hosts):
    return [h.hostname for h in hosts]


class TestSearch:

    def test_prefix_query_matches_one_host(self, registry):
        registry.add(Host("db01.corp.local"))
        registry.add(Host("app02.corp.local"))

        assert _names(registry.search("db")) == ["db01.corp.local"]

    def test_empty_query_returns_no_query_signal(self, registry):
        registry.add(Host("db01.corp.local"))
        registry.add(Host("app02.corp.local"))

        assert registry.search("") is NO_QUERY
        assert registry.search("   ") is NO_QUERY
        assert not NO_QUERY
        assert list(NO_QUERY) == []

    def test_search_is_case_insensitive_and_covers_description(self, registry):
        registry.add(Host("sql01.corp.local", "Payroll database"))
        registry.add(Host("web01.corp.local", "Intranet"))

        assert _names(registry.search("PAYROLL")) == ["sql01.corp.local"]
        assert _names(registry.search("CORP")) == ["sql01.corp.local", "web01.corp.local"]

    def test_no_match_returns_empty_list(self, registry):
        registry.add(Host("db01.corp.local"))
        assert registry.search("zzz") == []

    @pytest.mark.parametrize("hostname", ["db01.corp.local", "APP-02.Corp.Local", "10.0.0.5"])
    def test_added_host_is_found(self, registry, hostname):
        registry.add(Host(hostname))
        assert hostname in _names(registry.search(hostname))


class TestMutations:

    def test_add_persists_to_disk(self, registry, paths):
        registry.add(Host("db01.corp.local", "Primary DB"))

        reloaded = HostRegistry(paths.hosts_file)
        assert reloaded.load() == [Host("db01.corp.local", "Primary DB")]

    def test_duplicate_is_rejected_case_insensitively(self, registry):
        registry.add(Host("db01.corp.local"))

        with pytest.raises(DuplicateHost) as exc_info:
            registry.add(Host("DB01.corp.local"))
        assert exc_info.value.kind == RegistryError.DUPLICATE_HOST
        assert len(registry) == 1

    def test_empty_hostname_is_invalid(self, registry):
        with pytest.raises(RegistryError) as exc_info:
            registry.add(Host("  "))
        assert exc_info.value.kind == RegistryError.INVALID_HOST

    def test_update_changes_description(self, registry):
        registry.add(Host("db01.corp.local", "old"))
        registry.update(Host("DB01.CORP.LOCAL", "new"))

        assert registry.get("db01.corp.local") == Host("db01.corp.local", "new")

    def test_update_unknown_host_fails(self, registry):
        with pytest.raises(RegistryError) as exc_info:
            registry.update(Host("ghost.corp.local", "x"))
        assert exc_info.value.kind == RegistryError.INVALID_HOST

    def test_remove_is_idempotent(self, registry):
        registry.add(Host("db01.corp.local"))

        assert registry.remove("db01.corp.local") is True
        assert registry.remove("db01.corp.local") is False
        assert "db01.corp.local" not in registry

    def test_clear_returns_count_and_persists(self, registry, paths):
        registry.add(Host("a.corp.local"))
        registry.add(Host("b.corp.local"))

        assert registry.clear() == 2
        assert registry.clear() == 0
        assert read_hosts_csv(paths.hosts_file) == []

    def test_len_waits_for_pending_mutation(self, registry):
        registry.add(Host("a.corp.local"))
        sizes = []
        reader = threading.Thread(target=lambda: sizes.append(len(registry)))

        with registry._lock:
            reader.start()
            reader.join(timeout=0.2)
            assert reader.is_alive()
            registry.add(Host("b.corp.local"))
        reader.join(timeout=5)

        assert sizes == [2]

    def test_promote_adds_new_and_skips_existing(self, registry):
        registry.add(Host("db01.corp.local", "kept"))
        candidates = [
            DirectoryCandidate("DB01.corp.local", "from AD"),
            DirectoryCandidate("app02.corp.local", "App server", "Windows Server 2022"),
            DirectoryCandidate("app02.corp.local", "dup in batch"),
        ]

        assert registry.promote(candidates) == (1, 2)
        assert registry.get("db01.corp.local").description == "kept"
        assert registry.get("app02.corp.local").description == "App server"


class TestPersistence:

    def test_quoting_round_trip(self, paths):
        hosts = [Host("db01.corp.local", 'SQL, "primary" node'), Host("app02.corp.local", "")]
        write_hosts_csv(paths.hosts_file, hosts)

        assert read_hosts_csv(paths.hosts_file) == hosts

    def test_file_starts_with_header(self, registry, paths):
        registry.add(Host("db01.corp.local", "x"))
        first_line = paths.hosts_file.read_text(encoding="utf-8").splitlines()[0]
        assert first_line == "hostname,description"

    def test_reads_file_without_header_and_skips_duplicates(self, paths):
        paths.hosts_file.write_text(
            "db01.corp.local,Primary\nDB01.corp.local,Again\n\napp02.corp.local\n", encoding="utf-8"
        )
        assert read_hosts_csv(paths.hosts_file) == [
            Host("db01.corp.local", "Primary"),
            Host("app02.corp.local", ""),
        ]

    def test_missing_file_is_empty(self, paths):
        assert read_hosts_csv(paths.hosts_file) == []

    def test_failed_write_leaves_file_and_memory_untouched(self, registry, paths, mocker):
        registry.add(Host("db01.corp.local", "Primary"))
        before = paths.hosts_file.read_bytes()
        mocker.patch("quickrdp.core.registry.os.replace", side_effect=OSError("disk full"))

        with pytest.raises(RegistryError) as exc_info:
            registry.add(Host("app02.corp.local"))

        assert exc_info.value.kind == RegistryError.IO
        assert paths.hosts_file.read_bytes() == before
        assert _names(registry.all()) == ["db01.corp.local"]
        assert not list(paths.data_dir.glob(".hosts-*.tmp"))

    def test_unreadable_file_raises_registry_error(self, paths):
        paths.hosts_file.write_bytes(b"\xff\xfe\x00bad")
        with pytest.raises(RegistryError):
            read_hosts_csv(paths.hosts_file)
