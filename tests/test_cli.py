import pytest
from unittest.mock import MagicMock

import cli
import application_state

RESPONSE = "Sure.\n\na.py\n```\nprint(2)\n```\n\n"

class ScriptedService:
    """Replays a canned response through pump(), like the real service's event queue."""

    response = RESPONSE
    error = None
    instances = []

    def __init__(self, model=None):
        self.model = model
        self.events = []
        self.prompts = []
        ScriptedService.instances.append(self)

    def complete(self, prompt, streaming, callback, errback):
        self.prompts.append(prompt)
        if self.error is not None:
            self.events.append(lambda: errback(self.error))
        else:
            self.events.append(lambda: callback(self.response, False))
            self.events.append(lambda: callback("", True))
        return MagicMock()

    def pump(self, timeout=None):
        if not self.events:
            return 0
        self.events.pop(0)()
        return 1

@pytest.fixture(autouse=True)
def cli_env(monkeypatch):
    application_state.init_app_state()
    ScriptedService.instances = []
    monkeypatch.setattr(cli, "setup_logging", lambda **kwargs: None)
    monkeypatch.setattr(cli, "OpenAICompletionService", ScriptedService)
    yield
    application_state.init_app_state()

@pytest.fixture
def run(project):
    def _run(*args):
        application_state.init_app_state()
        return cli.run_cli(["-C", str(project), *args])
    return _run

def test_no_command_prints_help(capsys):
    assert cli.run_cli([]) == 0
    assert "usage" in capsys.readouterr().out

def test_search_lists_files(run, capsys):
    assert run("search", "*.py") == 0
    out = capsys.readouterr().out
    assert "Pattern: *.py" in out
    assert "[x] a.py" in out
    assert "[x] b.py" in out
    assert "README.md" not in out

def test_search_pattern_is_remembered(run, capsys):
    run("search", "*.md")
    capsys.readouterr()
    run("state")
    out = capsys.readouterr().out
    assert "Pattern: *.md" in out
    assert "README.md" in out

def test_select_and_deselect(run, capsys):
    run("search", "*.py")
    assert run("deselect", "a.*") == 0
    assert "Deselected: a.py" in capsys.readouterr().out
    run("state")
    out = capsys.readouterr().out
    assert "[ ] a.py" in out
    assert "[x] b.py" in out

def test_select_only(run, capsys):
    run("search", "*")
    run("select", "--only", "README.md")
    assert "Total: 1 of 3 files selected" in capsys.readouterr().out

def test_select_unknown_warns(run, capsys):
    run("select", "nothing.txt")
    assert "No files match: nothing.txt" in capsys.readouterr().err

def test_region(run, project, capsys):
    run("search", "*.py")
    assert run("region", "b.py", "2") == 0
    assert application_state.state.session.find("b.py").region == (9, 22)
    assert run("region", "b.py", "--clear") == 0
    assert application_state.state.session.find("b.py").region is None

def test_region_errors(run, capsys):
    assert run("region", "missing.py", "1", "2") == 1
    assert run("region", "a.py") == 1
    assert run("region", "a.py", "5", "9") == 1

def test_run_writes_shadow(run, project, capsys):
    run("search", "*.py")
    assert run("run", "--modify", "--batch", "-m", "my-model", "change it") == 0
    out = capsys.readouterr().out
    assert "Shadow files written (1):" in out
    assert (project / ".orgai__a.py").read_text() == "print(2)\n"
    service = ScriptedService.instances[-1]
    assert service.model == "my-model"
    assert "change it" in service.prompts[0]

def test_run_ask_mode(run, project, capsys):
    run("search", "*.py")
    assert run("run", "--ask", "what does it do") == 0
    assert not (project / ".orgai__a.py").exists()
    assert run("result") == 0
    out = capsys.readouterr().out
    assert "## what does it do" in out
    assert "print(2)" in out

def test_run_without_prompt_fails(run, capsys):
    assert run("run") == 1
    assert "Error" in capsys.readouterr().err

def test_run_failure(run, capsys):
    ScriptedService.error = ConnectionError("offline")
    try:
        assert run("run", "do it") == 1
    finally:
        ScriptedService.error = None
    assert "offline" in capsys.readouterr().err

def test_diff_merge_reset_cycle(run, project, capsys):
    run("search", "*.py")
    run("run", "change it")
    capsys.readouterr()

    assert run("diff") == 0
    out = capsys.readouterr().out
    assert "-print(1)" in out
    assert "+print(2)" in out

    assert run("state") == 0
    assert "a.py (modified)" in capsys.readouterr().out

    assert run("merge", "-y") == 0
    assert "a.py: merged" in capsys.readouterr().out
    assert (project / "a.py").read_text() == "print(2)\n"
    assert not (project / ".orgai__a.py").exists()

    assert run("reset") == 0
    assert "No shadow files" in capsys.readouterr().out

def test_interactive_merge_declined(run, project, monkeypatch, capsys):
    (project / ".orgai__a.py").write_text("print(2)\n")
    monkeypatch.setattr("builtins.input", lambda prompt: "n")
    assert run("merge", "a.py") == 0
    assert "a.py: unchanged" in capsys.readouterr().out
    assert (project / "a.py").read_text() == "print(1)\n"
    assert (project / ".orgai__a.py").exists()

def test_interactive_patch_partial(monkeypatch):
    answers = iter(["y", "n"])
    monkeypatch.setattr("builtins.input", lambda prompt: next(answers))
    patch = cli.interactive_patch("f.txt")
    assert patch("a\nb\nc\n", "A\nb\nC\n") == "A\nb\nc\n"

def test_interactive_patch_eof_quits(monkeypatch):
    def eof(prompt):
        raise EOFError
    monkeypatch.setattr("builtins.input", eof)
    assert cli.interactive_patch("f.txt")("a\n", "b\n") is None

def test_reset_single_file(run, project, capsys):
    (project / ".orgai__b.py").write_text("x\n")
    assert run("reset", "b.py") == 0
    assert "b.py: removed" in capsys.readouterr().out
    assert not (project / ".orgai__b.py").exists()

def test_orphan_shadow_is_listed(run, project, capsys):
    (project / ".orgai__gone.py").write_text("x\n")
    run("search", "*.py")
    assert "[?] gone.py (shadow only)" in capsys.readouterr().out

def test_review_opens_report(run, project, monkeypatch, capsys):
    report = MagicMock(return_value="/tmp/r.html")
    monkeypatch.setattr(cli, "open_diff_report", report)
    assert run("review") == 0
    assert "No shadow files to review" in capsys.readouterr().out
    (project / ".orgai__a.py").write_text("print(2)\n")
    assert run("review") == 0
    report.assert_called_once()

def test_config_command(capsys):
    from orgai import config
    assert cli.run_cli(["config", "--model", "m1", "--streaming", "off", "--pattern", "*.py"]) == 0
    assert config.model == "m1"
    assert config.streaming is False
    assert config.default_pattern == "*.py"
    assert cli.run_cli(["config", "--prefix", "bad/prefix"]) == 1

def test_bad_directory(capsys, tmp_path):
    assert cli.run_cli(["-C", str(tmp_path / "missing"), "state"]) == 1

def test_config_api_settings(monkeypatch, capsys):
    import sys
    cfg = sys.modules["orgai.config"]
    monkeypatch.setattr(cfg, "API_KEY", "old-key")
    monkeypatch.setattr(cfg, "API_BASE_URL", "https://api.openai.com/v1")
    assert cli.run_cli(["config", "--base-url", "http://localhost:8080/v1"]) == 0
    assert cfg.API_BASE_URL == "http://localhost:8080/v1"
    assert cfg.API_KEY == "old-key"
    assert cfg._settings["api_base_url"] == "http://localhost:8080/v1"

def test_binary_files_are_flagged(run, project, capsys):
    (project / "logo.png").write_bytes(b"\x89PNG\0\0")
    run("search", "*.png")
    assert "logo.png (binary)" in capsys.readouterr().out
