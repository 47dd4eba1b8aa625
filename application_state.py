"""Application state, persistence and logging setup."""
import logging
from dataclasses import dataclass, field
from logging.handlers import RotatingFileHandler
from pathlib import Path

import orgai
from orgai import APP_DATA_DIR, config, load_json_file, save_json_file
from orgai.session import Session
from orgai.shadow import ShadowFileManager
from orgai.fs import GitProjectIndex
from orgai.workflow import ResultBuffer

# Persistence files
SESSIONS_PATH = str(APP_DATA_DIR / "sessions.json")
LOG_DIR = APP_DATA_DIR / "logs"

logger = logging.getLogger(__name__)

@dataclass
class AppState:
    """State of the current invocation."""
    session: Session | None = None
    shadows: ShadowFileManager | None = None
    result: ResultBuffer = field(default_factory=ResultBuffer)

state = AppState()

def init_app_state():
    global state
    state = AppState()
    return state

def notify_state_changed(session: Session) -> None:
    """Called by the request controller on every transition; persists the active session."""
    if state.session is session:
        save_session()

def setup_logging(console: bool = True, verbose: bool = False):
    """Configure application logging to a rotating file and, optionally, stderr."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    log_file = LOG_DIR / "orgai.log"

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Silence noisy libraries
    for lib in ["urllib3", "httpcore", "httpx", "openai"]:
        logging.getLogger(lib).setLevel(logging.WARNING)

    # Remove existing handlers to avoid duplicates
    for h in root_logger.handlers[:]:
        root_logger.removeHandler(h)

    file_handler = RotatingFileHandler(log_file, maxBytes=1024*1024*5, backupCount=3, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    root_logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
        console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
        root_logger.addHandler(console_handler)

def _project_index(base_dir: Path):
    if not config.use_project_index:
        return None
    index = GitProjectIndex(base_dir)
    return index if index.available() else None

def _load_all() -> dict:
    data = load_json_file(SESSIONS_PATH, {})
    return data if isinstance(data, dict) else {}

def load_session(base_dir: Path | str | None = None) -> Session:
    """Open the session for `base_dir` (default CWD), restoring saved choices."""
    base = Path(base_dir or Path.cwd()).resolve()
    saved = _load_all().get(str(base), {})

    session = Session.open(
        base, saved.get("search_pattern") or config.default_pattern, project_index=_project_index(base)
    )
    session.apply_dict(saved)

    state.session = session
    state.shadows = ShadowFileManager(base)
    state.result = ResultBuffer(saved.get("result", ""))
    logger.debug(f"Loaded session for {base}")
    return session

def save_session() -> bool:
    if state.session is None:
        return False
    data = _load_all()
    entry = state.session.to_dict()
    entry["result"] = state.result.text
    data[state.session.base_dir] = entry
    return save_json_file(SESSIONS_PATH, data)

def forget_session(base_dir: Path | str) -> bool:
    data = _load_all()
    if data.pop(str(Path(base_dir).resolve()), None) is None:
        return False
    return save_json_file(SESSIONS_PATH, data)

def estimate_session_tokens(session: Session) -> int:
    try:
        return orgai.estimate_tokens(orgai.build_prompt(session))
    except orgai.ValidationError:
        return 0
