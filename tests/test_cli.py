"""Unit tests for docstore.cli — command parsing and execution."""

import io
import sys

import pytest

import docstore.cli as cli_mod


@pytest.fixture
def cli_config(tmp_path, config_file):
    """A docstore.yaml pointing at a SQLite file so state survives between commands."""
    path = config_file(
        {
            "backend": {"type": "sql", "database": {"url": f"sqlite:///{tmp_path / 'cli.db'}"}},
            "logging": {"structured": False},
        }
    )
    return str(path)


def run(capsys, *argv):
    code = cli_mod.main(list(argv))
    return code, capsys.readouterr().out


class TestCLIParsing:
    def test_module_has_expected_commands(self):
        for name in ("cmd_put", "cmd_get", "cmd_list", "cmd_revisions",
                     "cmd_verify", "cmd_repair", "cmd_validate", "cmd_check"):
            assert hasattr(cli_mod, name)

    def test_no_command_prints_help(self, capsys):
        code, out = run(capsys)
        assert code == 0
        assert "docstore" in out

    def test_unknown_command_exits(self):
        with pytest.raises(SystemExit):
            cli_mod.main(["explode"])


class TestCmdValidate:
    def test_valid(self, capsys):
        code, out = run(capsys, "validate", "readme.md")
        assert code == 0
        assert out.startswith("[OK]")

    def test_invalid(self, capsys):
        code, out = run(capsys, "validate", "Read Me")
        assert code == 1
        assert "[ERROR]" in out


class TestPutGet:
    def test_put_file_then_get(self, capsys, tmp_path, cli_config):
        body = tmp_path / "body.txt"
        body.write_bytes(b"hello from a file")
        code, out = run(capsys, "put", "readme", str(body), "--config", cli_config)
        assert code == 0
        assert out.startswith("[OK] readme@")
        assert "(previous: -)" in out

        code, out = run(capsys, "get", "readme", "--config", cli_config)
        assert code == 0
        assert out == "hello from a file"

    def test_put_stdin(self, capsys, monkeypatch, cli_config):
        monkeypatch.setattr(sys, "stdin", io.TextIOWrapper(io.BytesIO(b"piped body")))
        code, _ = run(capsys, "put", "notes", "--config", cli_config)
        assert code == 0
        code, out = run(capsys, "get", "notes", "--config", cli_config)
        assert out == "piped body"

    def test_get_specific_revision(self, capsys, tmp_path, cli_config):
        body = tmp_path / "b"
        body.write_bytes(b"v1")
        run(capsys, "put", "doc", str(body), "--config", cli_config)
        body.write_bytes(b"v2")
        run(capsys, "put", "doc", str(body), "--config", cli_config)

        _, listing = run(capsys, "revisions", "doc", "--config", cli_config)
        first_id = listing.splitlines()[0].split("\t")[0]
        code, out = run(capsys, "get", "doc", "--revision", first_id, "--config", cli_config)
        assert code == 0
        assert out == "v1"

    def test_get_missing(self, capsys, cli_config):
        code, out = run(capsys, "get", "nope", "--config", cli_config)
        assert code == 1
        assert "[ERROR]" in out

    def test_put_missing_file(self, capsys, tmp_path, cli_config):
        code, out = run(capsys, "put", "doc", str(tmp_path / "absent"), "--config", cli_config)
        assert code == 1
        assert "File not found" in out

    def test_put_invalid_id(self, capsys, tmp_path, cli_config):
        body = tmp_path / "b"
        body.write_bytes(b"x")
        code, out = run(capsys, "put", "Bad Id", str(body), "--config", cli_config)
        assert code == 1
        assert "[ERROR]" in out


class TestListing:
    def _put(self, capsys, tmp_path, cli_config, doc_id, data=b"x"):
        body = tmp_path / f"{doc_id}.in"
        body.write_bytes(data)
        run(capsys, "put", doc_id, str(body), "--config", cli_config)

    def test_list(self, capsys, tmp_path, cli_config):
        for doc_id in ("b", "a", "c"):
            self._put(capsys, tmp_path, cli_config, doc_id)
        code, out = run(capsys, "list", "--limit", "2", "--config", cli_config)
        assert code == 0
        lines = out.splitlines()
        assert [line.split("\t")[0] for line in lines[:2]] == ["a", "b"]
        assert "next token:" in out

        token = lines[-1].split("next token: ")[1]
        code, out = run(capsys, "list", "--token", token, "--config", cli_config)
        assert out.split("\t")[0] == "c"

    def test_list_bad_token(self, capsys, cli_config):
        code, out = run(capsys, "list", "--token", "abc", "--config", cli_config)
        assert code == 1
        assert "[ERROR]" in out

    def test_revisions(self, capsys, tmp_path, cli_config):
        self._put(capsys, tmp_path, cli_config, "doc", b"1")
        self._put(capsys, tmp_path, cli_config, "doc", b"2")
        code, out = run(capsys, "revisions", "doc", "--config", cli_config)
        lines = out.splitlines()
        assert code == 0
        assert len(lines) == 2
        assert lines[0].split("\t")[1] == "-"
        assert lines[1].split("\t")[1] == lines[0].split("\t")[0]


class TestIntegrityCommands:
    def test_verify_and_repair_intact(self, capsys, tmp_path, cli_config):
        body = tmp_path / "b"
        body.write_bytes(b"x")
        run(capsys, "put", "doc", str(body), "--config", cli_config)

        code, out = run(capsys, "verify", "doc", "--config", cli_config)
        assert code == 0
        assert "1 revision(s), chain intact" in out

        code, out = run(capsys, "repair", "doc", "--config", cli_config)
        assert code == 0
        assert "nothing to repair" in out

    def test_verify_missing(self, capsys, cli_config):
        code, out = run(capsys, "verify", "nope", "--config", cli_config)
        assert code == 1


class TestCmdCheck:
    def test_sql_backend(self, capsys, cli_config):
        code, out = run(capsys, "check", "--config", cli_config)
        assert code == 0
        assert "[OK] Config loaded (backend: sql" in out
        assert "[OK] Backend 'sql' reachable" in out

    def test_invalid_config(self, capsys, config_file):
        path = config_file({"store": {"id_policy": "random"}})
        code, out = run(capsys, "check", "--config", str(path))
        assert code == 1
        assert "[ERROR]" in out

    def test_memory_backend_warns(self, capsys, config_file):
        path = config_file({"logging": {"structured": False}})
        code = cli_mod.main(["check", "--config", str(path)])
        captured = capsys.readouterr()
        assert code == 0
        assert "[WARN] Backend 'memory' keeps nothing" in captured.err
        assert "[WARN]" not in captured.out

    def test_sql_backend_does_not_warn(self, capsys, cli_config):
        cli_mod.main(["check", "--config", cli_config])
        assert "[WARN]" not in capsys.readouterr().err


class TestMemoryBackendWarning:
    def test_state_does_not_outlive_a_command(self, capsys, tmp_path, config_file):
        path = config_file({"logging": {"structured": False}})
        body = tmp_path / "b"
        body.write_bytes(b"gone")
        code = cli_mod.main(["put", "doc", str(body), "--config", str(path)])
        captured = capsys.readouterr()
        assert code == 0
        assert captured.out.startswith("[OK] doc@")
        assert "[WARN]" in captured.err

        code = cli_mod.main(["get", "doc", "--config", str(path)])
        captured = capsys.readouterr()
        assert code == 1
        assert "[WARN]" in captured.err


class TestStructuredLogging:
    def test_put_writes_event_log(self, capsys, tmp_path, config_file):
        log_dir = tmp_path / "logs"
        path = config_file(
            {
                "backend": {"type": "sql", "database": {"url": f"sqlite:///{tmp_path / 'l.db'}"}},
                "logging": {"structured": True, "directory": str(log_dir)},
            }
        )
        body = tmp_path / "b"
        body.write_bytes(b"logged")
        code, _ = run(capsys, "put", "doc", str(body), "--config", str(path))
        assert code == 0

        from docstore.engine.logging import FileLogger

        events = FileLogger(log_dir=str(log_dir)).query("revisions", "execution")
        assert [e["doc_id"] for e in events] == ["doc"]
