import importlib
import os
import shutil
import stat
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

# Keep the import-time app data directory out of the user's home
os.environ.setdefault("ORGAI_HOME", tempfile.mkdtemp(prefix="orgai_test_home_"))

# Helper for Windows permission removal
def remove_readonly(func, path, _):
    os.chmod(path, stat.S_IWRITE)
    func(path)

@pytest.fixture
def temp_cwd():
    """Create a temporary directory and change CWD to it."""
    orig_cwd = os.getcwd()
    temp_dir = tempfile.mkdtemp()
    os.chdir(temp_dir)
    yield Path(temp_dir).resolve()
    os.chdir(orig_cwd)
    shutil.rmtree(temp_dir, onerror=remove_readonly)

@pytest.fixture(autouse=True)
def mock_app_data(tmp_path, monkeypatch):
    """Redirect all AppData writes to a temp directory and reset the config to defaults."""
    cfg = importlib.import_module("orgai.config")
    temp_app_data = tmp_path / "orgai_test_appdata"
    temp_app_data.mkdir(parents=True, exist_ok=True)

    with patch.object(cfg, "APP_DATA_DIR", temp_app_data), \
         patch.object(cfg, "SETTINGS_PATH", temp_app_data / "settings.json"), \
         patch.object(cfg, "_settings", {}), \
         patch("application_state.SESSIONS_PATH", str(temp_app_data / "sessions.json")), \
         patch("application_state.LOG_DIR", temp_app_data / "logs"):
        for name, value in vars(cfg.OrgAIConfig()).items():
            monkeypatch.setattr(cfg.config, name, value)
        monkeypatch.setattr(cfg.config, "use_project_index", False)
        yield temp_app_data

@pytest.fixture
def project(temp_cwd):
    """A small project: two Python files and a README."""
    (temp_cwd / "a.py").write_text("print(1)\n")
    (temp_cwd / "b.py").write_text("def b():\n    return 2\n")
    (temp_cwd / "README.md").write_text("# Demo\n")
    return temp_cwd

class FakeHandle:
    def __init__(self):
        self.cancelled = False

    def cancel(self):
        self.cancelled = True

class FakeCompletionService:
    """Records requests; the test drives the callbacks by hand."""

    def __init__(self):
        self.calls = []

    def complete(self, prompt, streaming, callback, errback):
        handle = FakeHandle()
        self.calls.append({
            "prompt": prompt, "streaming": streaming,
            "callback": callback, "errback": errback, "handle": handle,
        })
        return handle

    @property
    def last(self):
        return self.calls[-1]

@pytest.fixture
def fake_service():
    return FakeCompletionService()
