"""
Tests for CLI commands — profiles, install/uninstall/update/revert,
and global options.
"""

import json
import textwrap
from pathlib import Path

import pytest
from click.testing import CliRunner

from provisioning.main import cli

UNITS = """\
    units:
      - id: sdk
        version: 1.0.0
        requires:
          - name: runtime
      - id: sdk
        version: 2.0.0
        requires:
          - name: runtime
      - id: runtime
        version: 1.0.0
      - id: shared
        version: 1.0.0
        singleton: true
      - id: shared
        version: 2.0.0
        singleton: true
      - id: left
        version: 1.0.0
        requires:
          - name: shared
            range: "[1.0.0,1.0.0]"
      - id: right
        version: 1.0.0
        requires:
          - name: shared
            range: "[2.0.0,2.0.0]"
      - id: settings
        version: 1.0.0
        touchpoint:
          configure:
            - kind: native.write_file
              params: {path: settings.ini, content: "theme=dark"}
"""


@pytest.fixture
def project(tmp_path: Path, monkeypatch) -> Path:
    """A provisioning.yml with one repository; returns the config path."""
    monkeypatch.delenv("PROV_DATA_ROOT", raising=False)
    monkeypatch.delenv("PROV_LOG_LEVEL", raising=False)
    (tmp_path / "units.yml").write_text(textwrap.dedent(UNITS))
    config = tmp_path / "provisioning.yml"
    config.write_text("data_root: data\nrepositories: [units.yml]\n")
    return config


def _invoke(config: Path, *args: str):
    return CliRunner().invoke(cli, ["--config", str(config), *args])


def _profile(project: Path, install_folder: Path | None = None) -> None:
    args = ["profiles", "create", "ide"]
    if install_folder is not None:
        args += ["--install-folder", str(install_folder)]
    result = _invoke(project, *args)
    assert result.exit_code == 0, result.output


def _show(project: Path) -> dict:
    result = _invoke(project, "profiles", "show", "ide", "--json")
    assert result.exit_code == 0, result.output
    return json.loads(result.output)


class TestCLIGlobal:
    def test_help(self):
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "Provisioning engine" in result.output

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_bad_config(self, tmp_path: Path):
        config = tmp_path / "provisioning.yml"
        config.write_text("data_root: [oops\n")
        result = _invoke(config, "profiles", "list")
        assert result.exit_code == 1
        assert "Invalid YAML" in result.output

    def test_missing_repository(self, tmp_path: Path, monkeypatch):
        monkeypatch.delenv("PROV_DATA_ROOT", raising=False)
        config = tmp_path / "provisioning.yml"
        config.write_text("repositories: [missing.yml]\n")
        result = _invoke(config, "profiles", "list")
        assert result.exit_code == 1
        assert "not found" in result.output


class TestProfilesCommands:
    def test_create_and_list(self, project: Path):
        result = _invoke(project, "profiles", "list")
        assert "No profiles yet" in result.output

        _profile(project)
        result = _invoke(project, "profiles", "list", "--json")
        assert result.exit_code == 0
        assert [p["profile_id"] for p in json.loads(result.output)] == ["ide"]

    def test_create_with_properties(self, project: Path, tmp_path: Path):
        result = _invoke(
            project, "profiles", "create", "ide",
            "--install-folder", str(tmp_path / "ide"),
            "-p", "env=dev",
        )
        assert result.exit_code == 0
        assert "Profile created: ide" in result.output
        props = _show(project)["properties"]
        assert props["env"] == "dev"
        assert props["install.folder"] == str((tmp_path / "ide").resolve())

    def test_create_bad_property(self, project: Path):
        result = _invoke(project, "profiles", "create", "ide", "-p", "novalue")
        assert result.exit_code == 2
        assert "KEY=VALUE" in result.output

    def test_create_duplicate(self, project: Path):
        _profile(project)
        result = _invoke(project, "profiles", "create", "ide")
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_show_unknown(self, project: Path):
        result = _invoke(project, "profiles", "show", "ghost")
        assert result.exit_code == 1
        assert "Unknown profile: ghost" in result.output

    def test_show_human(self, project: Path):
        _profile(project)
        _invoke(project, "install", "ide", "sdk")
        result = _invoke(project, "profiles", "show", "ide")
        assert result.exit_code == 0
        assert "sdk 2.0.0 ★" in result.output
        assert "runtime 1.0.0" in result.output

    def test_history(self, project: Path):
        _profile(project)
        _invoke(project, "install", "ide", "sdk")
        result = _invoke(project, "profiles", "history", "ide", "--json")
        data = json.loads(result.output)
        assert len(data["timestamps"]) == 2
        assert [t["outcome"] for t in data["transactions"]] == ["committed"]

        result = _invoke(project, "profiles", "history", "ide")
        assert "committed" in result.output

    def test_remove(self, project: Path):
        _profile(project)
        result = _invoke(project, "profiles", "remove", "ide", "--yes")
        assert result.exit_code == 0
        assert "Profile removed" in result.output
        assert _invoke(project, "profiles", "show", "ide").exit_code == 1

    def test_remove_asks_first(self, project: Path):
        _profile(project)
        result = CliRunner().invoke(
            cli, ["--config", str(project), "profiles", "remove", "ide"], input="n\n",
        )
        assert result.exit_code == 1
        assert _show(project)["profile_id"] == "ide"

    def test_remove_unknown(self, project: Path):
        result = _invoke(project, "profiles", "remove", "ghost", "-y")
        assert result.exit_code == 1


class TestProvisionCommands:
    def test_install(self, project: Path):
        _profile(project)
        result = _invoke(project, "install", "ide", "sdk@1.0.0")
        assert result.exit_code == 0, result.output
        assert "Committed" in result.output
        units = {(u["id"], u["version"], u["inclusion"]) for u in _show(project)["units"]}
        assert units == {("sdk", "1.0.0", "strict"), ("runtime", "1.0.0", "none")}

    def test_install_dry_run(self, project: Path):
        _profile(project)
        result = _invoke(project, "install", "ide", "sdk", "--dry-run")
        assert result.exit_code == 0
        assert "[dry-run]" in result.output
        assert "Plan is valid" in result.output
        assert _show(project)["units"] == []

    def test_install_json(self, project: Path):
        _profile(project)
        result = _invoke(project, "install", "ide", "sdk", "--json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["ok"] is True
        assert [op["kind"] for op in data["plan"]["operands"]] == ["install", "install"]

    def test_install_unknown_unit(self, project: Path):
        _profile(project)
        result = _invoke(project, "install", "ide", "ghost")
        assert result.exit_code == 1
        assert "No unit matches" in result.output

    def test_conflict(self, project: Path):
        _profile(project)
        assert _invoke(project, "install", "ide", "left").exit_code == 0
        result = _invoke(project, "install", "ide", "right")
        assert result.exit_code == 1
        assert "Cannot satisfy request (conflict)" in result.output
        assert "Conflicts with installed: right/1.0.0" in result.output
        assert "shared" in result.output

    def test_conflict_json(self, project: Path):
        _profile(project)
        _invoke(project, "install", "ide", "left")
        result = _invoke(project, "install", "ide", "right", "--json")
        assert result.exit_code == 1
        plan = json.loads(result.output)["plan"]
        assert plan["severity"] == "conflict"
        assert set(plan["conflicts_with_any_roots"]) == {"left/1.0.0", "right/1.0.0"}
        assert plan["conflicts_with_installed_roots"] == ["right/1.0.0"]

    def test_failed_transaction_rolls_back(self, project: Path):
        _profile(project)  # no install folder: native.write_file cannot run
        result = _invoke(project, "install", "ide", "settings")
        assert result.exit_code == 1
        assert "Rolled back" in result.output
        assert _show(project)["units"] == []

    def test_native_actions_write_files(self, project: Path, tmp_path: Path):
        _profile(project, install_folder=tmp_path / "ide")
        result = _invoke(project, "install", "ide", "settings")
        assert result.exit_code == 0, result.output
        assert (tmp_path / "ide" / "settings.ini").read_text() == "theme=dark"

    def test_uninstall(self, project: Path):
        _profile(project)
        _invoke(project, "install", "ide", "sdk")
        result = _invoke(project, "uninstall", "ide", "sdk")
        assert result.exit_code == 0, result.output
        assert _show(project)["units"] == []

    def test_update(self, project: Path):
        _profile(project)
        _invoke(project, "install", "ide", "sdk@1.0.0")
        result = _invoke(project, "update", "ide")
        assert result.exit_code == 0, result.output
        assert "sdk 1.0.0 --> sdk 2.0.0" in result.output

        result = _invoke(project, "update", "ide")
        assert "Everything is up to date" in result.output

    def test_revert(self, project: Path):
        _profile(project)
        first = _show(project)["timestamp"]
        _invoke(project, "install", "ide", "sdk")
        result = _invoke(project, "revert", "ide", str(first))
        assert result.exit_code == 0, result.output
        assert _show(project)["units"] == []

    def test_unknown_profile(self, project: Path):
        result = _invoke(project, "update", "ghost")
        assert result.exit_code == 1
        assert "Unknown profile: ghost" in result.output
