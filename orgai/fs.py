"""File system operations: reading, caching and file discovery."""
import glob as globlib
import logging
import subprocess
from pathlib import Path
from typing import Protocol, Sequence

from .config import DEFAULT_HIDDEN

logger = logging.getLogger(__name__)

RECURSIVE_MARKER = "**/"

class FileCache:
    """Cache for file contents to avoid repeated disk reads."""

    def __init__(self):
        self._cache: dict[str, tuple[str, float]] = {}  # path -> (content, mtime)

    def get(self, filepath: str) -> str | None:
        if filepath not in self._cache:
            return None
        cached_content, cached_mtime = self._cache[filepath]
        try:
            if Path(filepath).stat().st_mtime == cached_mtime:
                return cached_content
        except OSError:
            pass
        del self._cache[filepath]
        return None

    def set(self, filepath: str, content: str) -> None:
        try:
            self._cache[filepath] = (content, Path(filepath).stat().st_mtime)
        except OSError:
            pass

    def invalidate(self, filepath: str) -> None:
        self._cache.pop(filepath, None)

    def clear(self) -> None:
        self._cache.clear()

    def get_or_read(self, filepath: str) -> str:
        cached = self.get(filepath)
        if cached is not None:
            return cached
        # newline="" keeps CRLF files intact so offsets stay valid
        with open(filepath, "r", encoding="utf-8", errors="replace", newline="") as f:
            content = f.read()
        self.set(filepath, content)
        return content

file_cache = FileCache()

def is_binary_file(path: Path | str) -> bool:
    try:
        with open(path, "rb") as f:
            return b"\0" in f.read(1024)
    except OSError:
        return False

def is_path_within(file_path: Path, root: Path) -> bool:
    try:
        return file_path.resolve().is_relative_to(root.resolve())
    except (OSError, ValueError):
        return False

def run_command(cmd: list[str], timeout: float = 10.0, cwd: Path | None = None) -> tuple[bool, str]:
    try:
        result = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
            cwd=cwd or Path.cwd()
        )
        return result.returncode == 0, result.stdout or ""
    except subprocess.TimeoutExpired:
        return False, "(timeout reached)"
    except OSError as e:
        return False, f"Error running command: {e}"

class ProjectIndex(Protocol):
    def list_project_files(self) -> Sequence[str]: ...

class GitProjectIndex:
    """Lists the files git knows about (tracked, or untracked but not ignored)."""

    def __init__(self, base_dir: Path | str):
        self.base_dir = Path(base_dir)

    def available(self) -> bool:
        ok, out = run_command(["git", "rev-parse", "--is-inside-work-tree"], cwd=self.base_dir)
        return ok and out.strip() == "true"

    def list_project_files(self) -> list[str]:
        ok, out = run_command(
            ["git", "ls-files", "-z", "--cached", "--others", "--exclude-standard"],
            cwd=self.base_dir
        )
        if not ok:
            logger.warning(f"git ls-files failed in {self.base_dir}: {out.strip()}")
            return []
        # -z keeps non-ASCII names unquoted
        return [name for name in out.split("\0") if name.strip()]

def expand_patterns(pattern_str: str) -> list[str]:
    """Split a space-separated pattern list, adding the base-directory variant of every `**/` pattern."""
    patterns: list[str] = []
    for pattern in pattern_str.split():
        if pattern not in patterns:
            patterns.append(pattern)
        if pattern.startswith(RECURSIVE_MARKER):
            stripped = pattern[len(RECURSIVE_MARKER):]
            if stripped and stripped not in patterns:
                patterns.append(stripped)
    return patterns

def shadow_twin_pattern(pattern: str, prefix: str) -> str:
    """Pattern matching the shadow files of whatever `pattern` matches."""
    head, sep, tail = pattern.rpartition("/")
    if tail.startswith(prefix):
        return pattern
    return f"{head}{sep}{prefix}{tail}"

def _explicit_dirs(pattern: str) -> set[str]:
    """Directory names written literally in `pattern`; these are never treated as hidden."""
    return {part for part in pattern.split("/")[:-1] if not globlib.has_magic(part)}

def _is_hidden(rel_path: str, explicit: set[str]) -> bool:
    return any(part in DEFAULT_HIDDEN and part not in explicit for part in rel_path.split("/")[:-1])

def _glob_files(base_dir: Path, pattern: str) -> list[str]:
    explicit = _explicit_dirs(pattern)
    matches = []
    for m in globlib.glob(pattern, root_dir=base_dir, recursive=True):
        rel = Path(m).as_posix()
        if _is_hidden(rel, explicit):
            continue
        if (base_dir / rel).is_file():
            matches.append(rel)
    matches.sort(key=lambda s: s.lower())
    return matches

def match_files(
    base_dir: Path | str, pattern_str: str, shadow_prefix: str, project_index: ProjectIndex | None = None
) -> tuple[list, dict[str, str]]:
    """
    Expand `pattern_str` under `base_dir`.

    Returns the discovered files as FileSelection records (all chosen, no region)
    in discovery order, plus a mapping of original name -> shadow path for every
    shadow file found. A shadow whose original is gone still shows up in the mapping.
    """
    from .session import FileSelection

    base = Path(base_dir).resolve()
    seen: set[str] = set()
    regular: list[str] = []
    shadows: dict[str, str] = {}

    for pattern in expand_patterns(pattern_str):
        for candidate in (pattern, shadow_twin_pattern(pattern, shadow_prefix)):
            for rel in _glob_files(base, candidate):
                if rel in seen:
                    continue
                seen.add(rel)
                head, sep, name = rel.rpartition("/")
                if name.startswith(shadow_prefix) and len(name) > len(shadow_prefix):
                    original = f"{head}{sep}{name[len(shadow_prefix):]}"
                    shadows[original] = str(base / rel)
                else:
                    regular.append(rel)

    if project_index is not None:
        indexed = {Path(p).as_posix() for p in project_index.list_project_files()}
        regular = [rel for rel in regular if rel in indexed]

    files = [FileSelection(file=rel, full_path=str(base / rel)) for rel in regular]
    logger.debug(f"Matched {len(files)} file(s) and {len(shadows)} shadow(s) for '{pattern_str}' in {base}")
    return files, shadows
