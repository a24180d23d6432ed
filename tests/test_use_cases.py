"""
Tests for use cases — workspace assembly and the provisioning commands,
without the CLI.
"""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from provisioning.core.config import load_config
from provisioning.core.models import PROP_INSTALL_FOLDER, VersionRange
from provisioning.core.use_cases.profiles import create_profile, profile_history, show_profile
from provisioning.core.use_cases.provision import (
    parse_unit_spec,
    run_install,
    run_revert,
    run_uninstall,
    run_update,
)
from provisioning.core.use_cases.workspace import open_workspace

UNITS = """\
    units:
      - id: editor
        version: 1.0.0
        requires:
          - name: runtime
        artifacts: [editor.jar]
        touchpoint:
          install:
            - kind: native.copy_artifact
              params: {artifact: editor.jar, target: plugins/editor.jar}
          configure:
            - kind: native.write_file
              params: {path: etc/editor.ini, content: "enabled=true"}
      - id: editor
        version: 2.0.0
        requires:
          - name: runtime
      - id: runtime
        version: 1.0.0
"""


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("PROV_DATA_ROOT", raising=False)
    repo = tmp_path / "repo"
    (repo / "artifacts").mkdir(parents=True)
    (repo / "units.yml").write_text(textwrap.dedent(UNITS))
    (repo / "artifacts" / "editor.jar").write_bytes(b"JAR")
    (tmp_path / "provisioning.yml").write_text("data_root: data\nrepositories: [repo/units.yml]\n")

    ws = open_workspace(config=load_config(tmp_path / "provisioning.yml"))
    create_profile(ws, "ide", install_folder=tmp_path / "ide")
    return ws


class TestParseUnitSpec:
    def test_forms(self):
        assert parse_unit_spec("sdk") == ("sdk", None)
        assert parse_unit_spec("sdk@1.2") == ("sdk", VersionRange.exact("1.2"))
        assert parse_unit_spec("sdk@[1.0,2.0)") == ("sdk", VersionRange.parse("[1.0,2.0)"))

    @pytest.mark.parametrize("spec", ["@1.0", "sdk@x.y"])
    def test_invalid(self, spec):
        with pytest.raises(ValueError):
            parse_unit_spec(spec)


class TestWorkspace:
    def test_artifacts_found_beside_repository(self, workspace, tmp_path):
        expected = (tmp_path / "repo" / "artifacts" / "editor.jar").resolve()
        assert workspace.artifacts == {"editor.jar": expected}
        assert workspace.context().artifacts["editor.jar"].is_file()

    def test_profile_created_with_install_folder(self, workspace, tmp_path):
        profile = workspace.store.get("ide")
        assert profile.get_property(PROP_INSTALL_FOLDER) == str((tmp_path / "ide").resolve())

    def test_invalid_profile_id(self, workspace):
        assert "Invalid profile id" in create_profile(workspace, "../evil").error

    def test_duplicate_profile(self, workspace):
        assert "already exists" in create_profile(workspace, "ide").error


class TestProvision:
    def test_install_runs_native_actions(self, workspace, tmp_path):
        result = run_install(workspace, "ide", ["editor@1.0.0"])
        assert result.ok, result.to_dict()
        ide = tmp_path / "ide"
        assert (ide / "plugins" / "editor.jar").read_bytes() == b"JAR"
        assert (ide / "etc" / "editor.ini").read_text() == "enabled=true"
        assert [u.key for u in workspace.store.get("ide").units()] == [
            "editor/1.0.0", "runtime/1.0.0",
        ]

    def test_install_picks_highest(self, workspace):
        run_install(workspace, "ide", ["editor"])
        assert workspace.store.get("ide").query("editor")[0].key == "editor/2.0.0"

    def test_dry_run_changes_nothing(self, workspace, tmp_path):
        result = run_install(workspace, "ide", ["editor@1.0.0"], dry_run=True)
        assert result.ok
        assert result.status is not None
        assert workspace.store.get("ide").units() == []
        assert not (tmp_path / "ide").exists()

    def test_unknown_unit(self, workspace):
        assert run_install(workspace, "ide", ["ghost"]).error == "No unit matches 'ghost'"

    def test_unknown_profile(self, workspace):
        assert run_install(workspace, "nope", ["editor"]).error == "Unknown profile: nope"

    def test_uninstall_drops_dependency(self, workspace, tmp_path):
        run_install(workspace, "ide", ["editor@1.0.0"])
        result = run_uninstall(workspace, "ide", ["editor"])
        assert result.ok
        assert [op.kind for op in result.plan.operands] == ["uninstall", "uninstall"]
        assert workspace.store.get("ide").units() == []

    def test_uninstall_missing(self, workspace):
        assert run_uninstall(workspace, "ide", ["editor"]).error == "editor is not installed in ide"

    def test_update(self, workspace):
        run_install(workspace, "ide", ["editor@1.0.0"])
        result = run_update(workspace, "ide")
        assert result.ok
        assert [op.kind for op in result.plan.operands] == ["update"]
        assert workspace.store.get("ide").query("editor")[0].key == "editor/2.0.0"

    def test_update_nothing_newer(self, workspace):
        run_install(workspace, "ide", ["editor"])
        result = run_update(workspace, "ide")
        assert result.notes == ["Everything is up to date"]

    def test_revert(self, workspace):
        first = workspace.store.timestamps("ide")[0]
        run_install(workspace, "ide", ["editor"])
        result = run_revert(workspace, "ide", first)
        assert result.ok
        assert workspace.store.get("ide").units() == []
        assert len(workspace.store.timestamps("ide")) == 3

    def test_revert_unknown_timestamp(self, workspace):
        assert "no state at 1" in run_revert(workspace, "ide", 1).error

    def test_history_includes_ledger(self, workspace):
        run_install(workspace, "ide", ["editor"])
        history = profile_history(workspace, "ide")
        assert len(history.timestamps) == 2
        assert [t.outcome for t in history.transactions] == ["committed"]

    def test_show_historical_state(self, workspace):
        first = workspace.store.timestamps("ide")[0]
        run_install(workspace, "ide", ["editor"])
        assert show_profile(workspace, "ide", first).to_dict()["units"] == []
