"""Shadow files: the model's proposed content, stored next to each original."""
import logging
from pathlib import Path, PurePosixPath

from .config import config
from .errors import ShadowPathError
from .fs import is_path_within

logger = logging.getLogger(__name__)

class ShadowFileManager:
    def __init__(self, base_dir: Path | str, prefix: str | None = None):
        self.base_dir = Path(base_dir).resolve()
        self.prefix = prefix or config.shadow_prefix

    def shadow_path_for(self, name: str) -> Path:
        """`dir/file.py` -> `<base>/dir/<prefix>file.py`."""
        rel = PurePosixPath(name.replace("\\", "/"))
        if not rel.name:
            raise ShadowPathError(f"Not a file name: {name!r}")
        path = self.base_dir / rel.parent / f"{self.prefix}{rel.name}"
        if rel.is_absolute() or not is_path_within(path, self.base_dir):
            raise ShadowPathError(f"Refusing to write outside {self.base_dir}: {name!r}")
        return path

    def persist(self, session, name: str, content: str) -> Path:
        path = self.shadow_path_for(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write(content)
        if session.shadow_files is None:
            session.shadow_files = {}
        session.shadow_files[name] = str(path)
        logger.debug(f"Wrote shadow {path}")
        return path

    def _delete(self, path: Path | str) -> bool:
        p = Path(path)
        if not p.exists():
            return False
        p.unlink()
        logger.debug(f"Removed shadow {p}")
        return True

    def remove_all(self, session) -> bool:
        """Delete every shadow file of the session. Returns whether anything was deleted."""
        removed = False
        for shadow_path in list((session.shadow_files or {}).values()):
            removed = self._delete(shadow_path) or removed
        session.shadow_files = None
        return removed

    def remove_one(self, session, name: str) -> bool:
        if not session.shadow_files or name not in session.shadow_files:
            return False
        removed = self._delete(session.shadow_files.pop(name))
        if not session.shadow_files:
            session.shadow_files = None
        return removed
