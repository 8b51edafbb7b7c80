"""Tests for the stdio transport loop and the command line (fsctx.main)."""

import io
import json

import pytest

from fsctx import main as main_module
from fsctx.config import config
from fsctx.main import main, serve


def run_lines(state, *lines):
    instream = io.StringIO("".join(line + "\n" for line in lines))
    outstream = io.StringIO()
    serve(instream, outstream, state)
    return [json.loads(line) for line in outstream.getvalue().splitlines()]


def request(req_id, method, params=None):
    message = {"jsonrpc": "2.0", "id": req_id, "method": method}
    if params is not None:
        message["params"] = params
    return json.dumps(message)


class TestServe:
    def test_one_response_per_request_in_order(self, state):
        responses = run_lines(
            state,
            request(1, "initialize", {"protocolVersion": "2024-11-05", "capabilities": {}}),
            request(2, "tools/list"),
            request(3, "tools/call", {"name": "nope", "arguments": {}}),
        )

        assert [r["id"] for r in responses] == [1, 2, 3]
        assert "result" in responses[0]
        assert "error" in responses[2]

    def test_malformed_lines_are_dropped(self, state):
        responses = run_lines(
            state,
            "this is not json",
            "[1, 2, 3]",
            '{"jsonrpc": "2.0", "id": 9}',
            "",
            request(10, "tools/list"),
        )

        assert [r["id"] for r in responses] == [10]

    def test_notifications_are_silent(self, state):
        responses = run_lines(
            state,
            json.dumps({"jsonrpc": "2.0", "method": "notifications/initialized"}),
            request(1, "tools/list"),
        )

        assert [r["id"] for r in responses] == [1]

    def test_end_to_end_working_directory(self, state, project):
        set_cwd = {
            "method": "tools/call",
            "params": {"name": "set_working_directory", "arguments": {"path": str(project)}},
            "id": 1,
        }
        list_cwd = {"method": "tools/call", "params": {"name": "list", "arguments": {"path": "."}}, "id": 2}

        first, second = run_lines(state, json.dumps(set_cwd), json.dumps(list_cwd))

        assert str(project) in first["result"]["content"][0]["text"]
        listing = second["result"]["content"][0]["text"]
        assert listing.startswith(f"All paths relative to {project}:")
        assert "README.md" in listing
        assert "src/" in listing

    def test_unicode_round_trips(self, state, tmp_path):
        target = tmp_path / "grüße.txt"
        target.write_text("héllo ✓\n", encoding="utf-8")

        (response,) = run_lines(
            state, request(1, "tools/call", {"name": "read", "arguments": {"paths": [str(target)]}})
        )

        assert "héllo ✓" in response["result"]["content"][0]["text"]


class TestCommandLine:
    @pytest.fixture(autouse=True)
    def isolated(self, tmp_path, monkeypatch):
        calls = []
        monkeypatch.setattr(config, "SESSION_FILE", str(tmp_path / "cli-sessions" / "fs.json"))
        monkeypatch.setattr(config, "LOG_LOCATION", None)
        monkeypatch.setattr(config, "LOG_LEVEL", "INFO")
        monkeypatch.delenv("LOG_LOCATION", raising=False)
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        monkeypatch.setattr(main_module, "setup_logging", lambda *args: calls.append(args))
        return calls

    def test_set_working_directory_then_list(self, project, capsys):
        assert main(["set-working-directory", str(project)]) == 0
        assert f"Set context to {project}" in capsys.readouterr().out

        assert main(["list", "--recursive"]) == 0
        out = capsys.readouterr().out
        assert "src/pkg/mod.py" in out

    def test_named_session(self, project, capsys):
        main(["set-working-directory", str(project), "--session-id", "docs"])
        capsys.readouterr()

        assert main(["read", "README.md", "--session-id", "docs"]) == 0
        assert "# demo" in capsys.readouterr().out

    def test_write_and_search(self, tmp_path, capsys):
        target = tmp_path / "out" / "hello.txt"

        assert main(["write", str(target), "hello world"]) == 0
        assert main(["search", "WORLD", str(target.parent), "--highlight-style", "markdown"]) == 0

        assert "hello **world**" in capsys.readouterr().out

    def test_failure_exits_non_zero(self, tmp_path, capsys):
        assert main(["delete", str(tmp_path / "absent.txt")]) == 1
        assert "Unable to delete" in capsys.readouterr().err

    def test_relative_path_without_context_fails(self, capsys):
        assert main(["delete", "relative.txt"]) == 1
        assert "No context found" in capsys.readouterr().err

    def test_log_location_from_env(self, tmp_path, monkeypatch, isolated):
        log_file = str(tmp_path / "logs" / "fsctx.log")
        monkeypatch.setenv("LOG_LOCATION", log_file)
        monkeypatch.setenv("LOG_LEVEL", "debug")

        main(["list", str(tmp_path)])

        assert isolated == [(log_file, "DEBUG")]

    def test_storage_failure_aborts_startup(self, tmp_path, monkeypatch, capsys):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        monkeypatch.setattr(config, "SESSION_FILE", str(blocker / "fs.json"))

        assert main(["list", str(tmp_path)]) == 1
        assert "Unable to create session directory" in capsys.readouterr().err
