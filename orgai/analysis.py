"""Diffs between originals and their shadows, hunk selection and the HTML review report."""
import difflib
import logging
import os
import tempfile
import webbrowser
from pathlib import Path
from typing import Callable, Iterator, NamedTuple

from .fs import file_cache

logger = logging.getLogger(__name__)

class Hunk(NamedTuple):
    tag: str               # "replace", "delete" or "insert"
    original_start: int    # line index into the original
    original: list[str]
    modified: list[str]

def _read_lines(path: Path | str) -> list[str]:
    p = Path(path)
    if not p.is_file():
        return []
    return file_cache.get_or_read(str(p)).splitlines(keepends=True)

def shadow_pairs(session) -> list[tuple[str, Path, Path]]:
    """(name, original path, shadow path) for every shadow of the session, sorted by name."""
    base = Path(session.base_dir)
    return [(name, base / name, Path(shadow)) for name, shadow in sorted((session.shadow_files or {}).items())]

def shadow_diff(session, name: str, context: int = 3) -> str:
    shadow = (session.shadow_files or {}).get(name)
    if not shadow:
        return ""
    original_lines = _read_lines(Path(session.base_dir) / name)
    shadow_lines = _read_lines(shadow)
    return "".join(difflib.unified_diff(
        original_lines, shadow_lines, fromfile=f"a/{name}", tofile=f"b/{name}", n=context
    ))

def iter_hunks(original: str, modified: str) -> Iterator[Hunk]:
    a = original.splitlines(keepends=True)
    b = modified.splitlines(keepends=True)
    matcher = difflib.SequenceMatcher(None, a, b, autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag != "equal":
            yield Hunk(tag, i1, a[i1:i2], b[j1:j2])

def patch_selected(original: str, modified: str, accept: Callable[[Hunk], bool]) -> str:
    """Apply the hunks of `original` -> `modified` that `accept` approves."""
    a = original.splitlines(keepends=True)
    out: list[str] = []
    pos = 0
    for hunk in iter_hunks(original, modified):
        out.extend(a[pos:hunk.original_start])
        if accept(hunk):
            out.extend(hunk.modified)
        else:
            out.extend(hunk.original)
        pos = hunk.original_start + len(hunk.original)
    out.extend(a[pos:])
    return "".join(out)

def open_diff_report(session) -> str | None:
    """Write a side-by-side HTML report of every shadow against its original and open it."""
    full_diff_text = "".join(shadow_diff(session, name) for name, _, _ in shadow_pairs(session))
    if not full_diff_text.strip():
        full_diff_text = "No textual changes detected."
    title = Path(session.base_dir).name
    # Escaped for a JavaScript template literal inside a <script> block
    diff_literal = full_diff_text.replace("\\", "\\\\").replace("`", "\\`").replace("$", "\\$").replace("</", "<\\/")

    html_content = f"""
    <!DOCTYPE html>
    <html lang="en">
    <head>
        <meta charset="utf-8" />
        <title>orgai review - {title}</title>
        <link rel="stylesheet" href="https://cdnjs.cloudflare.com/ajax/libs/highlight.js/11.9.0/styles/github.min.css" />
        <link rel="stylesheet" type="text/css" href="https://cdn.jsdelivr.net/npm/diff2html/bundles/css/diff2html.min.css" />
        <script type="text/javascript" src="https://cdn.jsdelivr.net/npm/diff2html/bundles/js/diff2html-ui.min.js"></script>
        <style>
            body {{ font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif; padding: 20px; background: #f4f4f4; }}
            h2 {{ color: #333; margin-bottom: 20px; }}
        </style>
    </head>
    <body>
        <h2>Proposed changes: {title}</h2>
        <div id="diff_target"></div>
        <script>
            document.addEventListener('DOMContentLoaded', function () {{
                var diffString = `{diff_literal}`;
                var configuration = {{
                    drawFileList: true,
                    matching: 'lines',
                    outputFormat: 'side-by-side',
                    synchronisedScroll: true,
                    highlight: true,
                }};
                var ui = new Diff2HtmlUI(document.getElementById('diff_target'), diffString, configuration);
                ui.draw();
                ui.highlightCode();
            }});
        </script>
    </body>
    </html>
    """

    try:
        fd, path = tempfile.mkstemp(suffix=".html", prefix="orgai_review_")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(html_content)
    except OSError as e:
        logger.error(f"Failed to write review report: {e}")
        return None
    webbrowser.open(Path(path).as_uri())
    return path
