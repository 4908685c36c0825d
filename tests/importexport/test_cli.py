"""
Import CLI Tests
"""

import json
from pathlib import Path

import pytest

from importexport.cli import build_parser, config_from_args, main
from importexport.errors import ConfigurationError


def parse(*argv):
    return build_parser().parse_args(["import", *argv])


class TestArguments:

    def test_flags_build_config(self):
        args = parse(
            "--resource", "http://localhost:8080/rest/col",
            "--dir", "export",
            "--versions", "--binaries", "--overwrite-tombstones",
            "--user", "admin:se:cret"
        )

        config = config_from_args(args)

        assert config.base_directory == Path("export")
        assert config.include_versions and config.include_binaries
        assert config.overwrite_tombstones
        assert config.credentials == ("admin", "se:cret")

    def test_config_file_wins(self, tmp_path):
        path = tmp_path / "import.json"
        path.write_text(json.dumps({
            "resource": "http://localhost:8080/rest/other",
            "base_directory": "snap",
        }))

        config = config_from_args(parse("--config", str(path), "--resource", "http://ignored/x"))

        assert config.resource == "http://localhost:8080/rest/other"

    def test_required_flags_without_config(self):
        with pytest.raises(ConfigurationError):
            config_from_args(parse("--dir", "export"))

    def test_user_requires_password_separator(self):
        args = parse("--resource", "http://localhost:8080/rest/col", "--dir", "export", "--user", "admin")

        with pytest.raises(ConfigurationError):
            config_from_args(args)


class TestExitStatus:

    @pytest.fixture(autouse=True)
    def quiet_logging(self, monkeypatch):
        monkeypatch.setattr("importexport.cli.setup_logging", lambda **kwargs: None)

    def test_fatal_error_exits_one(self, capsys):
        assert main(["import", "--dir", "export"]) == 1
        assert "[FAIL]" in capsys.readouterr().err

    def test_no_command_exits_one(self):
        assert main([]) == 1
