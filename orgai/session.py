"""Selection model and session state."""
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .config import config
from .fs import ProjectIndex, match_files

logger = logging.getLogger(__name__)

Region = tuple[int, int]

@dataclass(frozen=True)
class FileSelection:
    """One discovered file. Offsets in `region` are character offsets into the file text."""
    file: str
    full_path: str
    region: Region | None = None
    chosen: bool = True

    def to_dict(self) -> dict:
        return {
            "file": self.file,
            "chosen": self.chosen,
            "region": list(self.region) if self.region else None,
        }

def region_from_lines(text: str, first_line: int, last_line: int) -> Region:
    """Convert an inclusive, 1-based line range into character offsets."""
    if first_line < 1 or last_line < first_line:
        raise ValueError(f"Invalid line range {first_line}-{last_line}")
    lines = text.splitlines(keepends=True)
    if first_line > len(lines):
        raise ValueError(f"Line {first_line} is past the end of the file ({len(lines)} lines)")
    start = sum(len(line) for line in lines[:first_line - 1])
    end = sum(len(line) for line in lines[:min(last_line, len(lines))])
    return start, end

@dataclass
class Session:
    """Aggregate state of one prompt-and-edit workflow over a project directory."""
    _base_dir: str
    search_pattern: str = ""
    files: list[FileSelection] = field(default_factory=list)
    shadow_files: dict[str, str] | None = None
    modify_code: bool = True
    prompt: str = ""
    project_index: ProjectIndex | None = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        self._base_dir = str(Path(self._base_dir).resolve())

    @classmethod
    def open(cls, base_dir: Path | str, search_pattern: str | None = None,
             project_index: ProjectIndex | None = None) -> "Session":
        session = cls(str(base_dir), project_index=project_index)
        session.search(search_pattern if search_pattern is not None else config.default_pattern)
        return session

    @property
    def base_dir(self) -> str:
        return self._base_dir

    def search(self, pattern: str | None = None) -> None:
        """Re-run discovery, replacing the file list and the shadow mapping."""
        if pattern is not None:
            self.search_pattern = pattern
        files, shadows = match_files(
            self._base_dir, self.search_pattern, config.shadow_prefix, self.project_index
        )
        self.files = files
        self.shadow_files = shadows or None
        logger.info(f"Found {len(files)} file(s) for '{self.search_pattern}'")

    def find(self, file: str) -> FileSelection | None:
        for sel in self.files:
            if sel.file == file:
                return sel
        return None

    def _replace(self, file: str, **changes: Any) -> FileSelection:
        for i, sel in enumerate(self.files):
            if sel.file == file:
                self.files[i] = replace(sel, **changes)
                return self.files[i]
        raise KeyError(file)

    def set_chosen(self, file: str, chosen: bool) -> FileSelection:
        return self._replace(file, chosen=chosen)

    def set_region(self, file: str, region: Region | None) -> FileSelection:
        if region is not None:
            start, end = region
            if start < 0 or end < start:
                raise ValueError(f"Invalid region {region}")
            region = (start, end)
        return self._replace(file, region=region)

    def chosen_files(self) -> list[FileSelection]:
        return [sel for sel in self.files if sel.chosen]

    def has_modifications(self) -> bool:
        return bool(self.shadow_files)

    def to_dict(self) -> dict:
        """Serialize the user's choices. Shadow mappings are rebuilt from disk instead."""
        return {
            "search_pattern": self.search_pattern,
            "prompt": self.prompt,
            "modify_code": self.modify_code,
            "files": [sel.to_dict() for sel in self.files],
        }

    def apply_dict(self, data: dict) -> None:
        """Restore prompt, flags and per-file choices for files that are still present."""
        self.prompt = data.get("prompt", "")
        self.modify_code = data.get("modify_code", True)
        for entry in data.get("files", []):
            name = entry.get("file")
            if not name or self.find(name) is None:
                continue
            region = entry.get("region")
            self._replace(
                name,
                chosen=bool(entry.get("chosen", True)),
                region=tuple(region) if region else None,
            )
