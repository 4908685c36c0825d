"""
Audit Trail Tests
"""

import json

from importexport.audit import AuditLog


class TestAuditLog:

    def test_disabled_without_path(self, tmp_path):
        audit = AuditLog()

        audit.success("import", "http://localhost:8080/rest/col")
        audit.close()

        assert not audit.enabled
        assert list(tmp_path.iterdir()) == []

    def test_one_json_object_per_mutation(self, tmp_path):
        path = tmp_path / "audit.log"
        audit = AuditLog(path)

        audit.success("create_version", "http://localhost:8080/rest/col", label="v1")
        audit.failure("delete", "http://localhost:8080/rest/col/x", status=500)
        audit.close()

        first, second = [json.loads(line) for line in path.read_text().splitlines()]
        assert first["event"] == "create_version"
        assert first["label"] == "v1"
        assert first["outcome"] == "success"
        assert "timestamp" in first
        assert second["level"] == "error"
        assert second["outcome"] == "failure"
        assert second["status"] == 500

    def test_appends_across_runs(self, tmp_path):
        path = tmp_path / "audit.log"
        for _ in range(2):
            audit = AuditLog(path)
            audit.success("import", "http://localhost:8080/rest/col")
            audit.close()

        assert len(path.read_text().splitlines()) == 2
