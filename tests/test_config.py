"""Tests for settings loading and config value resolution."""

import json

import pytest

from agentstream.config import (
    ChatSettings,
    aresolve_config_value,
    clear_config_value_cache,
    deep_merge,
    load_settings,
    migrate_settings,
    resolve_config_value,
)


def write_settings(directory, data):
    directory.mkdir(parents=True, exist_ok=True)
    (directory / "settings.json").write_text(json.dumps(data))


@pytest.fixture
def dirs(tmp_path):
    global_dir = tmp_path / "home" / ".agentstream"
    project = tmp_path / "project"
    project.mkdir()
    return global_dir, project


class TestDeepMerge:
    def test_nested(self):
        merged = deep_merge({"a": {"x": 1, "y": 2}, "b": 1}, {"a": {"y": 3}})
        assert merged == {"a": {"x": 1, "y": 3}, "b": 1}

    def test_none_skipped(self):
        assert deep_merge({"a": 1}, {"a": None}) == {"a": 1}


class TestMigrateSettings:
    def test_camel_case_keys(self):
        assert migrate_settings({"baseUrl": "x", "turnTimeoutSeconds": 5}) == {
            "base_url": "x",
            "turn_timeout_seconds": 5,
        }

    def test_snake_case_wins(self):
        data = {"base_url": "snake", "baseUrl": "camel"}
        assert migrate_settings(data)["base_url"] == "snake"
        data = {"baseUrl": "camel", "base_url": "snake"}
        assert migrate_settings(data)["base_url"] == "snake"


class TestLoadSettings:
    def test_defaults(self, dirs):
        global_dir, project = dirs
        settings = load_settings(cwd=project, config_dir=global_dir, env={})
        assert settings == ChatSettings()

    def test_project_overrides_global(self, dirs):
        global_dir, project = dirs
        write_settings(global_dir, {"baseUrl": "http://global", "maxSteps": 3})
        write_settings(project / ".agentstream", {"baseUrl": "http://project"})

        settings = load_settings(cwd=project, config_dir=global_dir, env={})

        assert settings.base_url == "http://project"
        assert settings.max_steps == 3

    def test_env_overrides_files(self, dirs):
        global_dir, project = dirs
        write_settings(global_dir, {"baseUrl": "http://global", "accessToken": "file"})
        env = {"AGENTSTREAM_BASE_URL": "http://env", "AGENTSTREAM_ACCESS_TOKEN": "env-token"}

        settings = load_settings(cwd=project, config_dir=global_dir, env=env)

        assert settings.base_url == "http://env"
        assert settings.access_token == "env-token"

    def test_unknown_keys_ignored(self, dirs):
        global_dir, project = dirs
        write_settings(global_dir, {"theme": "dark", "chatPath": "/chat"})
        settings = load_settings(cwd=project, config_dir=global_dir, env={})
        assert settings.chat_path == "/chat"

    def test_invalid_file_ignored(self, dirs):
        global_dir, project = dirs
        global_dir.mkdir(parents=True)
        (global_dir / "settings.json").write_text("{not json")
        settings = load_settings(cwd=project, config_dir=global_dir, env={})
        assert settings == ChatSettings()

    def test_non_object_file_ignored(self, dirs):
        global_dir, project = dirs
        write_settings(global_dir, ["baseUrl"])
        settings = load_settings(cwd=project, config_dir=global_dir, env={})
        assert settings == ChatSettings()


class TestResolveConfigValue:
    @pytest.fixture(autouse=True)
    def _clear_cache(self):
        clear_config_value_cache()
        yield
        clear_config_value_cache()

    def test_literal(self, monkeypatch):
        monkeypatch.delenv("sk-literal", raising=False)
        assert resolve_config_value("sk-literal") == "sk-literal"

    def test_env_var(self, monkeypatch):
        monkeypatch.setenv("AGENTSTREAM_TEST_TOKEN", "from-env")
        assert resolve_config_value("AGENTSTREAM_TEST_TOKEN") == "from-env"

    def test_command(self):
        assert resolve_config_value("!echo from-command") == "from-command"

    def test_command_without_output(self):
        assert resolve_config_value("!true") is None

    def test_env_mapping(self):
        env = {"AGENT_TOKEN": "from-mapping"}
        assert resolve_config_value("AGENT_TOKEN", env) == "from-mapping"
        assert resolve_config_value("AGENT_TOKEN", {}) == "AGENT_TOKEN"

    def test_failing_command(self):
        assert resolve_config_value("!echo partial; exit 3") is None

    def test_command_output_cached(self, tmp_path):
        counter = tmp_path / "runs"
        command = f"!echo x >> {counter}; echo token"
        assert resolve_config_value(command) == "token"
        assert resolve_config_value(command) == "token"
        assert counter.read_text().count("x") == 1

    @pytest.mark.asyncio
    async def test_async_command(self):
        assert await aresolve_config_value("!echo from-thread") == "from-thread"

    @pytest.mark.asyncio
    async def test_async_env_mapping(self):
        assert await aresolve_config_value("T", {"T": "v"}) == "v"
