"""Tests for configuration loading."""

import pytest

from vcenter_tags.config import PASSWORD_ENV_VAR, load_config, resolve_password


def write(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text)
    return str(path)


def test_load_config(tmp_path):
    config = load_config(write(tmp_path, """
vcenter:
  host: vc01.example.com
  username: administrator@vsphere.local
export:
  exclude_system_categories: true
"""))

    assert config["vcenter"]["host"] == "vc01.example.com"
    assert config["export"]["exclude_system_categories"] is True
    assert config["import"] == {}


def test_empty_sections_become_dicts(tmp_path):
    config = load_config(write(tmp_path, "vcenter:\n  host: vc\n  username: u\nexport:\n"))

    assert config["export"] == {}


def test_missing_file_exits(tmp_path, capsys):
    with pytest.raises(SystemExit) as excinfo:
        load_config(str(tmp_path / "nope.yaml"))

    assert excinfo.value.code == 1
    assert "Config file not found" in capsys.readouterr().out


def test_missing_vcenter_section_exits(tmp_path, capsys):
    with pytest.raises(SystemExit):
        load_config(write(tmp_path, "export: {}\n"))

    assert "Missing required config sections: ['vcenter']" in capsys.readouterr().out


def test_missing_host_exits(tmp_path, capsys):
    with pytest.raises(SystemExit):
        load_config(write(tmp_path, "vcenter:\n  username: admin\n"))

    assert "['host']" in capsys.readouterr().out


def test_password_from_config(monkeypatch):
    monkeypatch.setenv(PASSWORD_ENV_VAR, "from-env")

    assert resolve_password({"password": "from-config"}) == "from-config"


def test_password_from_environment(monkeypatch):
    monkeypatch.setenv(PASSWORD_ENV_VAR, "from-env")

    assert resolve_password({"username": "admin"}) == "from-env"


def test_password_prompt(monkeypatch):
    monkeypatch.delenv(PASSWORD_ENV_VAR, raising=False)
    monkeypatch.setattr("getpass.getpass", lambda prompt: "typed")

    assert resolve_password({"username": "admin"}) == "typed"
