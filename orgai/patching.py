"""Response parsing and merging of shadow files into originals."""
import logging
from pathlib import Path
from typing import Callable, Iterator, NamedTuple

from pattern import FENCE, fence_line_pattern, file_name_prefix_pattern
from .fs import file_cache

logger = logging.getLogger(__name__)

DiffAndPatch = Callable[[str, str], str | None]

class FenceEvent(NamedTuple):
    position: int  # offset of the fence at column 0
    end: int       # offset just past the fence line and its newline
    kind: str      # "open" or "close"

def scan_fences(text: str) -> Iterator[FenceEvent]:
    """
    Yield an event for every fence line in `text`.

    Only a fence starting at column 0 counts; an indented fence is plain content.
    Openers and closers alternate: an opener is closed by the next fence line,
    whatever the content in between looks like.
    """
    kind = "open"
    for match in fence_line_pattern.finditer(text):
        end = match.end()
        if end < len(text) and text[end] == "\n":
            end += 1
        yield FenceEvent(match.start(), end, kind)
        kind = "close" if kind == "open" else "open"

def clean_file_name(line: str) -> str | None:
    """Strip markdown decoration from a file-name line; None when it is not a file name."""
    name = line.strip().lstrip("#").strip()
    name = file_name_prefix_pattern.sub("", name)
    name = name.strip("`*\"' ")
    if name.startswith("./"):
        name = name[2:]
    if not name or name.startswith(FENCE) or name.endswith(":"):
        return None
    return name

def _file_name_before(text: str, position: int) -> str | None:
    preceding = text[:position].rstrip()
    if not preceding:
        return None
    return clean_file_name(preceding.rsplit("\n", 1)[-1])

def parse_file_blocks(text: str) -> dict[str, str]:
    """
    Extract `name -> content` from a response made of file-name lines each
    followed by a fenced block. Unnamed and unterminated blocks are skipped;
    a later block for the same name wins.
    """
    files: dict[str, str] = {}
    opener: FenceEvent | None = None
    for event in scan_fences(text):
        if event.kind == "open":
            opener = event
            continue
        assert opener is not None
        name = _file_name_before(text, opener.position)
        if name is None:
            logger.debug(f"Skipping fenced block at offset {opener.position}: no file name above it")
        else:
            files[name] = text[opener.end:event.position]
        opener = None
    if opener is not None:
        logger.debug(f"Ignoring unterminated fenced block at offset {opener.position}")
    return files

def merge_shadow(session, shadows, name: str, diff_and_patch: DiffAndPatch) -> bool:
    """
    Merge the shadow of `name` into the original through `diff_and_patch`.

    `diff_and_patch(original_content, modified_content)` returns the text to
    write, or None to leave the original alone. When the merged text takes all
    of the shadow's content the shadow is removed. Returns whether the original changed.
    """
    shadow_path = (session.shadow_files or {}).get(name)
    if not shadow_path or not Path(shadow_path).is_file():
        logger.warning(f"No shadow file for {name}")
        return False

    original = Path(session.base_dir) / name
    original_content = ""
    if original.is_file():
        original_content = file_cache.get_or_read(str(original))
    with open(shadow_path, "r", encoding="utf-8", errors="replace", newline="") as f:
        modified_content = f.read()

    merged = diff_and_patch(original_content, modified_content)
    if merged is None or merged == original_content:
        logger.info(f"{name}: nothing applied")
        return False

    original.parent.mkdir(parents=True, exist_ok=True)
    with open(original, "w", encoding="utf-8", newline="") as f:
        f.write(merged)
    file_cache.invalidate(str(original))
    logger.info(f"{name}: merged changes from {Path(shadow_path).name}")

    if merged == modified_content:
        shadows.remove_one(session, name)
    return True
