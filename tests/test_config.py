"""
Tests for configuration loading — provisioning.yml parsing and validation.
"""

import textwrap
from pathlib import Path

import pytest

from provisioning.core.config import ConfigError, find_config_file, load_config
from provisioning.core.config.loader import ENV_DATA_ROOT


@pytest.fixture(autouse=True)
def _no_env_override(monkeypatch):
    monkeypatch.delenv(ENV_DATA_ROOT, raising=False)


@pytest.fixture
def config_yml(tmp_path: Path) -> Path:
    """A provisioning.yml with relative paths."""
    content = textwrap.dedent("""\
        data_root: state
        repositories:
          - repo/units.yml
          - /srv/p2/extra.yml
        ledger: false
        log_level: info
    """)
    path = tmp_path / "provisioning.yml"
    path.write_text(content)
    return path


class TestLoadConfig:
    def test_explicit_file(self, config_yml: Path, tmp_path: Path):
        config = load_config(config_yml)
        base = tmp_path.resolve()
        assert config.data_root == base / "state"
        assert config.repositories == [base / "repo" / "units.yml", Path("/srv/p2/extra.yml")]
        assert config.ledger is False
        assert config.log_level == "info"
        assert config.source == config_yml
        assert config.profiles_dir == base / "state" / "profiles"

    def test_wrapped_under_provisioning_key(self, tmp_path: Path):
        path = tmp_path / "provisioning.yml"
        path.write_text("provisioning:\n  data_root: wrapped\n")
        assert load_config(path).data_root == tmp_path.resolve() / "wrapped"

    def test_empty_file_uses_defaults(self, tmp_path: Path):
        path = tmp_path / "provisioning.yml"
        path.write_text("")
        config = load_config(path)
        assert config.data_root == tmp_path.resolve() / ".provisioning"
        assert config.repositories == []
        assert config.ledger is True

    def test_no_file_uses_defaults_at_cwd(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = load_config(search=False)
        assert config.source is None
        assert config.data_root == tmp_path.resolve() / ".provisioning"

    def test_search_finds_file(self, config_yml: Path, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert load_config().source == config_yml.resolve()

    def test_env_overrides_data_root(self, config_yml: Path, tmp_path: Path, monkeypatch):
        monkeypatch.setenv(ENV_DATA_ROOT, str(tmp_path / "elsewhere"))
        assert load_config(config_yml).data_root == (tmp_path / "elsewhere").resolve()

    def test_missing_explicit_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.yml")

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "provisioning.yml"
        path.write_text("data_root: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path)

    def test_not_a_mapping(self, tmp_path: Path):
        path = tmp_path / "provisioning.yml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(path)

    def test_invalid_field(self, tmp_path: Path):
        path = tmp_path / "provisioning.yml"
        path.write_text("repositories: 12\n")
        with pytest.raises(ConfigError, match="Invalid provisioning configuration"):
            load_config(path)


class TestFindConfigFile:
    def test_walks_up(self, config_yml: Path, tmp_path: Path):
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_config_file(nested) == config_yml.resolve()
