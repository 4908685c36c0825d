"""
Import Service Tests

End-to-end runs against the in-memory repository.
"""

import pytest

from importexport.config import ImportConfig
from importexport.errors import AuthenticationRequiredError
from importexport.service import ImportService, find_repository_root
from importexport.transport import RepositoryClient

from .fixtures import HOST, ROOT, T1, T2, T3, FakeRepository, SnapshotBuilder


COL = ROOT + "/col"


@pytest.fixture
def snapshot(tmp_path):
    return SnapshotBuilder(tmp_path / "export")


@pytest.fixture
def repository():
    return FakeRepository()


def run(snapshot, repository, **overrides):
    values = dict(resource=COL, base_directory=snapshot.base_directory)
    values.update(overrides)
    return ImportService(ImportConfig(**values), transport=repository.transport()).run()


class TestRoundTrip:

    def test_container_child_and_version(self, snapshot, repository):
        """Container with one child and one version re-imported into an empty target."""
        snapshot.container("/rest/col", last_modified=T3, versioned=True)
        snapshot.container("/rest/col/child", last_modified=T1)
        snapshot.version_listing("/rest/col", [("v1", T2)])
        snapshot.version_container("/rest/col", "v1", last_modified=T1)
        snapshot.version_container("/rest/col", "v1", last_modified=T1, child="child")

        report = run(snapshot, repository, include_versions=True)

        assert repository.tree() == {COL, COL + "/child"}
        assert repository.versions == {COL: ["v1"]}
        assert report.repository_root == ROOT
        assert report.events_applied == 4
        assert report.clean

    def test_version_state_written_before_checkpoint(self, snapshot, repository):
        snapshot.container("/rest/col", last_modified=T3, versioned=True)
        snapshot.version_listing("/rest/col", [("v1", T2)])
        snapshot.version_container("/rest/col", "v1", last_modified=T1)

        run(snapshot, repository, include_versions=True)

        mutations = [c for c in repository.calls() if c[0] in ("PUT", "POST")]
        assert mutations == [
            ("PUT", COL),
            ("POST", COL + "/fcr:versions"),
            ("PUT", COL),
        ]

    def test_child_removed_between_versions_is_deleted(self, snapshot, repository):
        snapshot.container("/rest/col", last_modified=T3, versioned=True)
        snapshot.version_listing("/rest/col", [("v1", T2)])
        snapshot.version_container("/rest/col", "v1", last_modified=T1)
        snapshot.version_container("/rest/col", "v1", last_modified=T1, child="gone")

        run(snapshot, repository, include_versions=True)

        assert repository.tree() == {COL}
        assert ("DELETE", COL + "/gone") in repository.calls()
        assert repository.tombstones == set()

    def test_child_deleted_before_version_that_lacks_it(self, snapshot, repository):
        """v1 holds y, v2 does not: y is gone when v2 is created."""
        snapshot.container("/rest/col", last_modified=T3, versioned=True)
        snapshot.version_listing("/rest/col", [("v1", T1), ("v2", T2)])
        snapshot.version_container("/rest/col", "v1", last_modified=T1)
        snapshot.version_container("/rest/col", "v1", last_modified=T1, child="y")
        snapshot.version_container("/rest/col", "v2", last_modified=T2)

        run(snapshot, repository, include_versions=True)

        calls = repository.calls()
        posts = [i for i, call in enumerate(calls) if call == ("POST", COL + "/fcr:versions")]
        assert len(posts) == 2
        assert posts[0] < calls.index(("DELETE", COL + "/y")) < posts[1]
        assert repository.versions == {COL: ["v1", "v2"]}
        assert repository.tree() == {COL}

    def test_versions_disabled_imports_head_only(self, snapshot, repository):
        snapshot.container("/rest/col", last_modified=T3, versioned=True)
        snapshot.container("/rest/col/child", last_modified=T1)
        snapshot.version_listing("/rest/col", [("v1", T2)])
        snapshot.version_container("/rest/col", "v1", last_modified=T1)

        report = run(snapshot, repository)

        assert repository.tree() == {COL, COL + "/child"}
        assert repository.versions == {}
        assert report.events_applied == 2

    def test_siblings_outside_resource_not_imported(self, snapshot, repository):
        snapshot.container("/rest/col", last_modified=T1)
        snapshot.container("/rest/other", last_modified=T1)

        run(snapshot, repository)

        assert repository.tree() == {COL}

    def test_audit_summary_written(self, snapshot, repository, tmp_path):
        snapshot.container("/rest/col", last_modified=T1)

        run(snapshot, repository, audit_log=tmp_path / "audit.log")

        lines = (tmp_path / "audit.log").read_text().splitlines()
        assert '"import_finished"' in lines[-1]


class TestRepositoryRoot:

    def test_nearest_declared_root(self, repository):
        config = ImportConfig(resource=COL + "/deep/child", base_directory="/tmp/unused")
        with RepositoryClient(config, transport=repository.transport()) as client:
            assert find_repository_root(client, config, config.resource) == ROOT

    def test_falls_back_to_host(self):
        repository = FakeRepository(root=HOST + "/elsewhere")
        config = ImportConfig(resource=COL, base_directory="/tmp/unused")
        with RepositoryClient(config, transport=repository.transport()) as client:
            assert find_repository_root(client, config, config.resource) == HOST

    def test_unauthorized_aborts(self, repository):
        repository.script("HEAD", COL, 401)
        config = ImportConfig(resource=COL, base_directory="/tmp/unused")
        with RepositoryClient(config, transport=repository.transport()) as client:
            with pytest.raises(AuthenticationRequiredError):
                find_repository_root(client, config, config.resource)
