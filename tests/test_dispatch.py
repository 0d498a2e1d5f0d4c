"""Tests for dispatch components."""

import json
from pathlib import Path
from typing import Any, Optional

import pytest

from shared.models import (
    AttemptOutcome,
    DispatchAttempt,
    ServerConfig,
    ServerKind,
    ToolErrorCode,
    ToolResult,
    ToolResultStatus,
)


def write_config(path: Path, servers: Any) -> Path:
    path.write_text(json.dumps(servers), encoding="utf-8")
    return path


class FakeExecutor:
    """Executor double that records calls and returns a fixed result."""

    def __init__(self, succeed: bool, data: Any = "ok") -> None:
        self.succeed = succeed
        self.data = data
        self.calls: list[tuple[str, dict[str, Any], Any]] = []

    def run(self, tool_name: str, parameters: dict[str, Any], credential: Optional[Any] = None) -> ToolResult:
        self.calls.append((tool_name, parameters, credential))
        if self.succeed:
            return ToolResult.success(tool_name, self.data)
        return ToolResult.failure(tool_name, "backend unavailable", ToolErrorCode.REMOTE_TRANSPORT)


class TestConfigStore:
    """Tests for the configuration store."""

    def test_load_json_list(self, tmp_path):
        """Test loading a plain list of servers, preserving order."""
        from dispatch.config_store import ConfigStore

        path = write_config(tmp_path / "servers.json", [
            {"name": "fs", "kind": "filesystem", "enabled": True, "allowedTools": ["readFile"]},
            {"name": "web", "kind": "search", "enabled": True, "endpoint": "https://api.example.com",
             "credentialEnvVar": "SEARCH_KEY", "timeoutSeconds": 5},
        ])

        servers = ConfigStore(path).load()

        assert [s.name for s in servers] == ["fs", "web"]
        assert servers[0].kind == ServerKind.FILESYSTEM
        assert servers[0].allowed_tools == ["readFile"]
        assert servers[1].credential_env_var == "SEARCH_KEY"
        assert servers[1].timeout_seconds == 5

    def test_load_yaml_mapping(self, tmp_path):
        """Test loading a YAML document with a servers key."""
        from dispatch.config_store import ConfigStore

        path = tmp_path / "servers.yaml"
        path.write_text(
            "servers:\n"
            "  - name: git\n"
            "    kind: versionControl\n"
            "    enabled: true\n"
            "    allowedTools: [status, log]\n",
            encoding="utf-8"
        )

        servers = ConfigStore(path).load()

        assert len(servers) == 1
        assert servers[0].kind == ServerKind.VERSION_CONTROL
        assert servers[0].enabled is True

    def test_missing_document(self, tmp_path):
        """Test that a missing document raises NotFound."""
        from dispatch.config_store import ConfigNotFoundError, ConfigStore

        with pytest.raises(ConfigNotFoundError) as exc_info:
            ConfigStore(tmp_path / "nope.json").load()

        assert exc_info.value.kind == "NotFound"

    def test_syntax_error_is_malformed(self, tmp_path):
        """Test that invalid JSON raises Malformed."""
        from dispatch.config_store import ConfigMalformedError, ConfigStore

        path = tmp_path / "servers.json"
        path.write_text('[{"name": "fs",', encoding="utf-8")

        with pytest.raises(ConfigMalformedError) as exc_info:
            ConfigStore(path).load()

        assert exc_info.value.kind == "Malformed"

    def test_invalid_record_yields_no_partial_list(self, tmp_path):
        """Test that one bad record rejects the whole document."""
        from dispatch.config_store import ConfigMalformedError, ConfigStore

        path = write_config(tmp_path / "servers.json", [
            {"name": "ok", "enabled": True},
            "not a mapping",
        ])

        with pytest.raises(ConfigMalformedError):
            ConfigStore(path).load()

    def test_wrong_top_level_type(self, tmp_path):
        """Test that a scalar document is malformed."""
        from dispatch.config_store import ConfigMalformedError, ConfigStore

        path = write_config(tmp_path / "servers.json", {"name": "fs"})

        with pytest.raises(ConfigMalformedError):
            ConfigStore(path).load()

    def test_no_defaulting_of_allowed_tools(self, tmp_path):
        """Test that absent allowedTools stays absent and unknown kinds become generic."""
        from dispatch.config_store import ConfigStore

        path = write_config(tmp_path / "servers.json", [
            {"name": "mystery", "kind": "ftp", "enabled": "true"},
        ])

        server = ConfigStore(path).load()[0]

        assert server.allowed_tools is None
        assert server.kind == ServerKind.GENERIC
        assert server.enabled is False


class TestCredentialResolver:
    """Tests for credential resolution."""

    def test_no_credential_required(self):
        """Test that servers without a variable need no credential."""
        from dispatch.credentials import CredentialResolver

        resolver = CredentialResolver(environ={})
        resolution = resolver.resolve(ServerConfig(name="fs", credentialEnvVar="  "))

        assert resolution.required is False
        assert resolution.credential is None
        assert not resolution.missing

    def test_resolves_from_environment(self):
        """Test resolving a set variable."""
        from dispatch.credentials import CredentialResolver

        resolver = CredentialResolver(environ={"API_TOKEN": "s3cret"})
        resolution = resolver.resolve(ServerConfig(name="api", credentialEnvVar="API_TOKEN"))

        assert resolution.credential.get_secret_value() == "s3cret"
        assert "s3cret" not in repr(resolution)
        assert not resolution.missing

    @pytest.mark.parametrize("environ", [{}, {"API_TOKEN": ""}, {"API_TOKEN": "   "}])
    def test_missing_or_blank_is_flagged(self, environ):
        """Test that unset or blank variables are reported as missing."""
        from dispatch.credentials import CredentialResolver

        resolver = CredentialResolver(environ=environ)
        resolution = resolver.resolve(ServerConfig(name="api", credentialEnvVar="API_TOKEN"))

        assert resolution.missing
        assert resolution.credential is None
        assert "API_TOKEN" in resolution.reason

    def test_reads_environment_on_every_call(self, monkeypatch):
        """Test that values are not cached between calls."""
        from dispatch.credentials import CredentialResolver

        resolver = CredentialResolver()
        server = ServerConfig(name="api", credentialEnvVar="DISPATCH_TEST_TOKEN")

        monkeypatch.setenv("DISPATCH_TEST_TOKEN", "first")
        assert resolver.resolve(server).credential.get_secret_value() == "first"

        monkeypatch.setenv("DISPATCH_TEST_TOKEN", "second")
        assert resolver.resolve(server).credential.get_secret_value() == "second"

        monkeypatch.delenv("DISPATCH_TEST_TOKEN")
        assert resolver.resolve(server).missing


class TestAccessControl:
    """Tests for allow-list checks."""

    @pytest.mark.parametrize("allowed", [None, []])
    def test_empty_allow_list_denies_everything(self, allowed):
        """Test the secure default."""
        from dispatch.access import is_allowed

        server = ServerConfig(name="fs", enabled=True, allowedTools=allowed)

        for tool in ["readFile", "search", "status", "anything"]:
            assert not is_allowed(server, tool)

    def test_empty_tool_name_denied(self):
        """Test that an empty tool name is never allowed."""
        from dispatch.access import is_allowed

        server = ServerConfig(name="fs", allowedTools=["", "readFile"])

        assert not is_allowed(server, "")

    def test_missing_server_denied(self):
        """Test that no server means no access."""
        from dispatch.access import check_access

        allowed, reason = check_access(None, "readFile")

        assert not allowed
        assert reason

    @pytest.mark.parametrize("tool", ["readFile", "ReadFile", "readfile", "READFILE"])
    def test_case_insensitive_match(self, tool):
        """Test that any casing of an allowed tool is granted."""
        from dispatch.access import is_allowed

        server = ServerConfig(name="fs", allowedTools=["readFile"])

        assert is_allowed(server, tool)

    @pytest.mark.parametrize("tool", ["read", "readFileX", "File", " readFile"])
    def test_exact_content_not_substring(self, tool):
        """Test that partial names do not match."""
        from dispatch.access import is_allowed

        server = ServerConfig(name="fs", allowedTools=["readFile"])

        assert not is_allowed(server, tool)

    def test_ascii_only_folding(self):
        """Test that non-ASCII case folding is not applied."""
        from dispatch.access import is_allowed

        server = ServerConfig(name="fs", allowedTools=["strasse"])

        assert not is_allowed(server, "STRAßE")
        assert not is_allowed(ServerConfig(name="fs", allowedTools=["ı"]), "I")

    def test_denial_reason(self):
        """Test that denials explain themselves."""
        from dispatch.access import check_access

        allowed, reason = check_access(ServerConfig(name="fs", allowedTools=["readFile"]), "writeFile")

        assert not allowed
        assert "writeFile" in reason


class TestDispatcher:
    """Tests for the dispatcher's server loop."""

    def setup_method(self):
        """Set up test fixtures."""
        self.first = FakeExecutor(succeed=False)
        self.second = FakeExecutor(succeed=True, data="from second")

    def make_dispatcher(self, tmp_path, servers, environ=None):
        from dispatch.config_store import ConfigStore
        from dispatch.credentials import CredentialResolver
        from dispatch.dispatcher import Dispatcher

        path = write_config(tmp_path / "servers.json", servers)
        dispatcher = Dispatcher(
            config_store=ConfigStore(path),
            root=tmp_path,
            credential_resolver=CredentialResolver(environ=environ or {})
        )
        executors = {"first": self.first, "second": self.second}
        dispatcher.register_executor(
            ServerKind.GENERIC, lambda server, root: executors[server.name]
        )
        return dispatcher

    def servers(self, **overrides):
        first = {"name": "first", "enabled": True, "allowedTools": ["lookup"]}
        second = {"name": "second", "enabled": True, "allowedTools": ["lookup"]}
        first.update(overrides)
        return [first, second]

    def test_falls_back_to_next_server(self, tmp_path):
        """Test that a failing server does not hide a later success."""
        dispatcher = self.make_dispatcher(tmp_path, self.servers())

        result = dispatcher.execute("lookup", {"q": 1})

        assert result.ok
        assert result.data == "from second"
        assert result.server == "second"
        assert len(self.first.calls) == 1
        assert len(self.second.calls) == 1

    def test_first_success_short_circuits(self, tmp_path):
        """Test that later servers are never invoked after a success."""
        self.first = FakeExecutor(succeed=True, data="from first")
        dispatcher = self.make_dispatcher(tmp_path, self.servers())

        result = dispatcher.execute("lookup", {})

        assert result.data == "from first"
        assert len(self.first.calls) == 1
        assert len(self.second.calls) == 0

    def test_execute_request(self, tmp_path):
        """Test dispatching a ToolRequest."""
        from shared.models import ToolRequest

        dispatcher = self.make_dispatcher(tmp_path, self.servers())

        result = dispatcher.execute_request(ToolRequest(tool_name="lookup", parameters={"q": 2}))

        assert result.server == "second"
        assert self.second.calls[0][1] == {"q": 2}

    def test_parameters_passed_through(self, tmp_path):
        """Test that parameters reach the executor unmodified."""
        dispatcher = self.make_dispatcher(tmp_path, self.servers(enabled=False))
        params = {"nested": {"a": [1, 2]}, "flag": True}

        dispatcher.execute("lookup", params)

        assert self.second.calls[0][1] == params

    def test_disabled_server_skipped(self, tmp_path):
        """Test that disabled servers are never consulted."""
        dispatcher = self.make_dispatcher(tmp_path, self.servers(enabled=False))

        dispatcher.execute("lookup", {})

        assert self.first.calls == []
        assert len(self.second.calls) == 1

    def test_denied_server_skipped(self, tmp_path):
        """Test that servers not permitting the tool are skipped."""
        self.first = FakeExecutor(succeed=True, data="from first")
        dispatcher = self.make_dispatcher(tmp_path, self.servers(allowedTools=["other"]))

        result = dispatcher.execute("lookup", {})

        assert result.data == "from second"
        assert self.first.calls == []

    def test_missing_credential_same_as_disabled(self, tmp_path):
        """Test that an unresolvable credential skips the server like enabled=false."""
        self.first = FakeExecutor(succeed=True, data="from first")
        dispatcher = self.make_dispatcher(
            tmp_path, self.servers(credentialEnvVar="UNSET_TOKEN_FOR_TEST")
        )
        gated = dispatcher.execute("lookup", {})

        disabled = self.make_dispatcher(tmp_path, self.servers(enabled=False)).execute("lookup", {})

        assert self.first.calls == []
        assert gated.status == disabled.status
        assert gated.data == disabled.data == "from second"

    def test_credential_handed_to_executor(self, tmp_path):
        """Test that a resolved credential is passed to the executor."""
        dispatcher = self.make_dispatcher(
            tmp_path,
            [{"name": "second", "enabled": True, "allowedTools": ["lookup"], "credentialEnvVar": "TOKEN"}],
            environ={"TOKEN": "abc"}
        )

        dispatcher.execute("lookup", {})

        assert self.second.calls[0][2].get_secret_value() == "abc"

    def test_all_servers_fail(self, tmp_path):
        """Test the exhausted failure when every server fails."""
        self.second = FakeExecutor(succeed=False)
        dispatcher = self.make_dispatcher(tmp_path, self.servers())

        result = dispatcher.execute("lookup", {})

        assert result.status == ToolResultStatus.ERROR
        assert result.error_code == ToolErrorCode.ALL_SERVERS_EXHAUSTED
        assert "lookup" in result.error
        assert "first" in result.error and "second" in result.error
        assert result.data is None

    def test_zero_servers(self, tmp_path):
        """Test that an empty configuration fails without raising."""
        dispatcher = self.make_dispatcher(tmp_path, [])

        result = dispatcher.execute("lookup", {})

        assert not result.ok
        assert result.error_code == ToolErrorCode.ALL_SERVERS_EXHAUSTED

    def test_missing_config_aborts(self, tmp_path):
        """Test that a missing configuration is returned as CONFIG_MISSING."""
        from dispatch.config_store import ConfigStore
        from dispatch.dispatcher import Dispatcher

        dispatcher = Dispatcher(ConfigStore(tmp_path / "absent.json"), root=tmp_path)

        result = dispatcher.execute("lookup", {})

        assert result.error_code == ToolErrorCode.CONFIG_MISSING

    def test_malformed_config_aborts(self, tmp_path):
        """Test that a malformed configuration is returned as CONFIG_MALFORMED."""
        from dispatch.config_store import ConfigStore
        from dispatch.dispatcher import Dispatcher

        path = tmp_path / "servers.json"
        path.write_text("{not json", encoding="utf-8")
        dispatcher = Dispatcher(ConfigStore(path), root=tmp_path)

        result = dispatcher.execute("lookup", {})

        assert result.error_code == ToolErrorCode.CONFIG_MALFORMED

    def test_config_reloaded_per_call(self, tmp_path):
        """Test that configuration changes apply to the next call."""
        self.first = FakeExecutor(succeed=True, data="from first")
        dispatcher = self.make_dispatcher(tmp_path, self.servers(enabled=False))
        assert dispatcher.execute("lookup", {}).data == "from second"

        write_config(tmp_path / "servers.json", self.servers())

        assert dispatcher.execute("lookup", {}).data == "from first"

    def test_raising_executor_counts_as_failure(self, tmp_path):
        """Test that an executor raising does not escape the dispatcher."""
        class Exploding:
            def run(self, tool_name, parameters, credential=None):
                raise RuntimeError("boom")

        dispatcher = self.make_dispatcher(tmp_path, self.servers())
        dispatcher.register_executor(
            ServerKind.GENERIC,
            lambda server, root: Exploding() if server.name == "first" else self.second
        )

        result = dispatcher.execute("lookup", {})

        assert result.data == "from second"

    def test_registered_factory_selected_by_kind(self, tmp_path):
        """Test that each server uses the factory registered for its kind."""
        dispatcher = self.make_dispatcher(
            tmp_path,
            [{"name": "web", "kind": "search", "enabled": True, "allowedTools": ["lookup"]}]
        )
        dispatcher.register_executor(ServerKind.SEARCH, lambda server, root: self.second)

        result = dispatcher.execute("lookup", {})

        assert result.server == "web"
        assert result.data == "from second"


class TestEndToEnd:
    """End-to-end scenarios with the real filesystem executor."""

    def setup_method(self):
        """Set up test fixtures."""
        self.servers = [{
            "name": "local-files",
            "kind": "filesystem",
            "enabled": True,
            "allowedTools": ["readFile"],
        }]

    def make_dispatcher(self, tmp_path):
        from dispatch.config_store import ConfigStore
        from dispatch.dispatcher import Dispatcher

        config = write_config(tmp_path / "servers.json", self.servers)
        workspace = tmp_path / "workspace"
        workspace.mkdir()
        return Dispatcher(ConfigStore(config), root=workspace), workspace

    def test_read_allowed_file(self, tmp_path):
        """Test readFile through the dispatcher."""
        dispatcher, workspace = self.make_dispatcher(tmp_path)
        (workspace / "notes.txt").write_text("hello", encoding="utf-8")

        result = dispatcher.execute("readFile", {"path": "notes.txt"})

        assert result.ok
        assert result.data == "hello"
        assert result.server == "local-files"

    def test_any_casing_reaches_the_tool(self, tmp_path):
        """Test that a differently cased tool name runs the same tool."""
        dispatcher, workspace = self.make_dispatcher(tmp_path)
        (workspace / "notes.txt").write_text("hello", encoding="utf-8")

        result = dispatcher.execute("READFILE", {"path": "notes.txt"})

        assert result.data == "hello"

    def test_write_not_in_allow_list(self, tmp_path):
        """Test that a tool outside the allow-list fails and leaves files alone."""
        dispatcher, workspace = self.make_dispatcher(tmp_path)
        notes = workspace / "notes.txt"
        notes.write_text("hello", encoding="utf-8")

        result = dispatcher.execute("writeFile", {"path": "notes.txt", "content": "x"})

        assert not result.ok
        assert result.error_code == ToolErrorCode.ALL_SERVERS_EXHAUSTED
        assert notes.read_text(encoding="utf-8") == "hello"

    def test_traversal_rejected(self, tmp_path):
        """Test that reading outside the root fails even if the file exists."""
        dispatcher, workspace = self.make_dispatcher(tmp_path)
        (tmp_path / "outside.txt").write_text("secret", encoding="utf-8")

        result = dispatcher.execute("readFile", {"path": "../outside.txt"})

        assert not result.ok
        assert "secret" not in result.error
        assert "outside the root" in result.error


class TestAuditLogger:
    """Tests for dispatch audit logging."""

    def test_sensitive_data_redaction(self, tmp_path):
        """Test that sensitive parameters are redacted, including nested ones."""
        from dispatch.audit import DispatchAuditLogger

        audit = DispatchAuditLogger(log_path=tmp_path / "audit.log")
        result = ToolResult.success("login", {"ok": True})

        entry = audit.create_entry(
            "login",
            {"username": "tester", "password": "hunter2", "headers": {"Authorization": "Bearer x"}},
            result,
            []
        )

        assert entry.parameters["username"] == "tester"
        assert entry.parameters["password"] == "[REDACTED]"
        assert entry.parameters["headers"]["Authorization"] == "[REDACTED]"

    def test_entries_written_as_json_lines(self, tmp_path):
        """Test writing and reading back audit entries."""
        from dispatch.audit import DispatchAuditLogger

        audit = DispatchAuditLogger(log_path=tmp_path / "logs" / "audit.log")
        attempts = [DispatchAttempt(server="fs", outcome=AttemptOutcome.SKIPPED_DENIED, reason="no")]
        failure = ToolResult.failure("readFile", "nothing", ToolErrorCode.ALL_SERVERS_EXHAUSTED)

        audit.log("readFile", {"path": "a.txt"}, failure, attempts)
        audit.log("readFile", {"path": "b.txt"}, ToolResult.success("readFile", "x", server="fs"), [])

        entries = audit.read_entries()

        assert len(entries) == 2
        assert entries[0].error_code == ToolErrorCode.ALL_SERVERS_EXHAUSTED
        assert entries[0].attempts[0].outcome == AttemptOutcome.SKIPPED_DENIED
        assert entries[1].server == "fs"

    def test_disabled_logger_writes_nothing(self, tmp_path):
        """Test that a disabled logger is a no-op."""
        from dispatch.audit import DispatchAuditLogger

        audit = DispatchAuditLogger(log_path=tmp_path / "audit.log", enabled=False)

        assert audit.log("x", {}, ToolResult.success("x"), []) is None
        assert not (tmp_path / "audit.log").exists()

    def test_dispatcher_audits_each_call(self, tmp_path):
        """Test that the dispatcher records one entry per dispatch."""
        from dispatch.audit import DispatchAuditLogger
        from dispatch.config_store import ConfigStore
        from dispatch.dispatcher import Dispatcher

        config = write_config(tmp_path / "servers.json", [])
        audit = DispatchAuditLogger(log_path=tmp_path / "audit.log")
        dispatcher = Dispatcher(ConfigStore(config), root=tmp_path, audit_logger=audit)

        dispatcher.execute("readFile", {"path": "a", "token": "t"})

        entries = audit.read_entries()
        assert len(entries) == 1
        assert entries[0].parameters["token"] == "[REDACTED]"


class TestExecuteTool:
    """Tests for the caller-facing entry point."""

    def setup_method(self):
        from dispatch import reset_dispatcher
        from shared.config import get_settings

        reset_dispatcher()
        get_settings.cache_clear()

    def teardown_method(self):
        from dispatch import reset_dispatcher
        from shared.config import get_settings

        reset_dispatcher()
        get_settings.cache_clear()

    def test_execute_tool_uses_settings(self, tmp_path, monkeypatch):
        """Test execute_tool against a configuration named by environment."""
        from dispatch import execute_tool

        workspace = tmp_path / "ws"
        workspace.mkdir()
        (workspace / "notes.txt").write_text("hello", encoding="utf-8")
        config = write_config(tmp_path / "servers.json", [
            {"name": "fs", "kind": "filesystem", "enabled": True, "allowedTools": ["readFile", "itemExists"]},
        ])

        monkeypatch.setenv("TOOL_DISPATCH_SETTINGS_PATH", str(tmp_path / "missing.yaml"))
        monkeypatch.setenv("TOOL_DISPATCH_CONFIG_PATH", str(config))
        monkeypatch.setenv("TOOL_DISPATCH_WORKSPACE_ROOT", str(workspace))

        assert execute_tool("readFile", {"path": "notes.txt"}).data == "hello"
        assert execute_tool("itemExists", {"path": "../../etc/passwd"}).data is False
