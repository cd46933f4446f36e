import logging

from agents_refactor import config
from agents_refactor.config import Settings


def test_defaults():
    settings = Settings()
    assert settings.ready_timeout == 30.0
    assert settings.discovery_timeout == 5.0
    assert "node_modules" in settings.skipped_directories


def test_from_env_overrides_durations():
    settings = Settings.from_env({
        "AGENTS_REFACTOR_READY_TIMEOUT": "12.5",
        "AGENTS_REFACTOR_DISCOVERY_TIMEOUT": "2",
        "AGENTS_REFACTOR_TSSERVER": "node /opt/ts/tsserver.js",
        "UNRELATED": "1",
    })

    assert settings.ready_timeout == 12.5
    assert settings.discovery_timeout == 2.0
    assert settings.update_timeout == 5.0
    assert settings.server_command == ["node", "/opt/ts/tsserver.js"]


def test_server_command_keeps_quoted_arguments():
    settings = Settings.from_env({
        "AGENTS_REFACTOR_TSSERVER": "node \"/opt/Type Script/tsserver.js\" --disableAutomaticTypingAcquisition",
    })

    assert settings.server_command == ["node", "/opt/Type Script/tsserver.js", "--disableAutomaticTypingAcquisition"]


def test_from_env_ignores_empty_values():
    settings = Settings.from_env({"AGENTS_REFACTOR_READY_TIMEOUT": ""})
    assert settings.ready_timeout == 30.0


def test_explicit_server_command_wins(tmp_path):
    settings = Settings(server_command=["tsserver", "--stdio"])
    assert settings.resolve_server_command(str(tmp_path)) == ["tsserver", "--stdio"]


def test_prefers_workspace_typescript(tmp_path):
    local = tmp_path / config.TSSERVER_RELATIVE_PATH
    local.parent.mkdir(parents=True)
    local.write_text("")

    assert Settings().resolve_server_command(str(tmp_path)) == ["node", str(local)]


def test_falls_back_to_global_tsserver(tmp_path, monkeypatch):
    monkeypatch.setattr(config.shutil, "which", lambda name: "/usr/local/bin/tsserver")
    assert Settings().resolve_server_command(str(tmp_path)) == ["/usr/local/bin/tsserver"]

    monkeypatch.setattr(config.shutil, "which", lambda name: None)
    command = Settings().resolve_server_command(str(tmp_path))
    assert command == ["node", str(tmp_path / config.TSSERVER_RELATIVE_PATH)]


def test_configure_logging_level_from_env(monkeypatch):
    calls = []
    monkeypatch.setenv("AGENTS_REFACTOR_LOG_LEVEL", "debug")
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))

    config.configure_logging()

    assert calls[0]["level"] == "DEBUG"
    assert calls[0]["format"] == config.LOG_FORMAT
