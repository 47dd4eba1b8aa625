"""CLI implementation for orgai."""
import argparse
import fnmatch
import sys
from concurrent.futures import CancelledError
from pathlib import Path

from orgai import (
    config, APP_DATA_DIR, OpenAICompletionService, RequestController, ValidationError,
    region_from_lines, file_cache, merge_shadow, shadow_diff, patch_selected, is_binary_file,
    open_diff_report, estimate_tokens, update_core_settings
)
import application_state
from application_state import (
    load_session, save_session, forget_session, setup_logging, notify_state_changed,
    estimate_session_tokens
)

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="orgai",
        description="orgai - send project files to an LLM and review its changes as shadow files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Subcommands:
  search    Set the search pattern and list matching files
  state     Show the current session
  select    Include files in the prompt
  deselect  Exclude files from the prompt
  region    Restrict a file to a line range
  run       Send the prompt with the selected files
  result    Print the accumulated model output
  diff      Show shadow files as unified diffs
  review    Open an HTML report of all shadow files
  merge     Merge shadow files into the originals
  reset     Delete shadow files

Examples:
  orgai search "**/*.py *.md"
  orgai region src/app.py 10 42
  orgai run --modify "Add docstrings"
  orgai merge src/app.py
"""
    )
    parser.add_argument("-C", "--directory", help="Project directory (default: CWD)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log to stderr")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    search_parser = subparsers.add_parser("search", help="Set the search pattern and list matching files")
    search_parser.add_argument("patterns", nargs="*", help="Glob patterns, e.g. '**/*.py' '*.md'")

    subparsers.add_parser("state", help="Show the current session")

    select_parser = subparsers.add_parser("select", help="Include files in the prompt")
    select_parser.add_argument("patterns", nargs="+", help="Names or wildcards of files to include")
    select_parser.add_argument("--only", action="store_true", help="Exclude every other file")

    deselect_parser = subparsers.add_parser("deselect", help="Exclude files from the prompt")
    deselect_parser.add_argument("patterns", nargs="+", help="Names or wildcards of files to exclude")

    region_parser = subparsers.add_parser("region", help="Restrict a file to a line range")
    region_parser.add_argument("file", help="File name relative to the project")
    region_parser.add_argument("start", nargs="?", type=int, help="First line (1-based)")
    region_parser.add_argument("end", nargs="?", type=int, help="Last line (inclusive)")
    region_parser.add_argument("--clear", action="store_true", help="Send the whole file again")

    run_parser = subparsers.add_parser("run", help="Send the prompt with the selected files")
    run_parser.add_argument("prompt", nargs="?", help="The request (default: the saved prompt)")
    mode = run_parser.add_mutually_exclusive_group()
    mode.add_argument("--modify", dest="modify", action="store_true", default=None, help="Ask for modified files")
    mode.add_argument("--ask", dest="modify", action="store_false", help="Ask for a plain answer")
    transport = run_parser.add_mutually_exclusive_group()
    transport.add_argument("--stream", dest="streaming", action="store_true", default=None, help="Stream the response")
    transport.add_argument("--batch", dest="streaming", action="store_false", help="Wait for the whole response")
    run_parser.add_argument("-m", "--model", help="Model to use")
    run_parser.add_argument("--review", action="store_true", help="Open the HTML review after completion")

    subparsers.add_parser("result", help="Print the accumulated model output")

    diff_parser = subparsers.add_parser("diff", help="Show shadow files as unified diffs")
    diff_parser.add_argument("files", nargs="*", help="Files to diff (default: all)")

    subparsers.add_parser("review", help="Open an HTML report of all shadow files")

    merge_parser = subparsers.add_parser("merge", help="Merge shadow files into the originals")
    merge_parser.add_argument("files", nargs="*", help="Files to merge (default: all)")
    merge_parser.add_argument("-y", "--yes", action="store_true", help="Accept every change without asking")

    reset_parser = subparsers.add_parser("reset", help="Delete shadow files")
    reset_parser.add_argument("files", nargs="*", help="Files whose shadow to delete (default: all)")
    reset_parser.add_argument("--forget", action="store_true", help="Also forget the saved session")

    config_parser = subparsers.add_parser("config", help="Manage configuration")
    config_parser.add_argument("--model", help="Set the default model")
    config_parser.add_argument("--streaming", choices=["on", "off"], help="Stream responses by default")
    config_parser.add_argument("--prefix", help="Set the shadow file prefix")
    config_parser.add_argument("--pattern", help="Set the default search pattern")
    config_parser.add_argument("--project-index", choices=["on", "off"], help="Only match files git knows about")
    config_parser.add_argument("--system-prompt", help="Set the extra system prompt")
    config_parser.add_argument("--api-key", help="Set the API key")
    config_parser.add_argument("--base-url", help="Set the API base URL")
    config_parser.add_argument("--path", action="store_true", help="Print the app data folder path")
    return parser

def _print_files(session) -> None:
    if not session.files:
        print(f"No files match '{session.search_pattern}'")
        return
    shadows = session.shadow_files or {}
    for sel in session.files:
        mark = "x" if sel.chosen else " "
        extra = ""
        if sel.region:
            extra += f" [chars {sel.region[0]}-{sel.region[1]}]"
        if sel.file in shadows:
            extra += " (modified)"
        if sel.chosen and is_binary_file(sel.full_path):
            extra += " (binary)"
        print(f"  [{mark}] {sel.file}{extra}")
    orphans = sorted(set(shadows) - {sel.file for sel in session.files})
    for name in orphans:
        print(f"  [?] {name} (shadow only)")

def _matching(session, patterns: list[str]) -> list[str]:
    names = [sel.file for sel in session.files]
    matched = []
    for pattern in patterns:
        hits = [n for n in names if n == pattern or fnmatch.fnmatch(n, pattern)]
        if not hits:
            print(f"Warning: No files match: {pattern}", file=sys.stderr)
        matched.extend(h for h in hits if h not in matched)
    return matched

def _targets(session, files: list[str]) -> list[str]:
    shadows = session.shadow_files or {}
    if not files:
        return sorted(shadows)
    for name in files:
        if name not in shadows:
            print(f"Warning: No shadow file for: {name}", file=sys.stderr)
    return [name for name in files if name in shadows]

def _ask(question: str) -> str:
    try:
        return input(question).strip().lower()
    except EOFError:
        return "q"

def interactive_patch(name: str):
    """diff_and_patch that walks the hunks of one file, asking for each."""
    def _patch(original: str, modified: str) -> str | None:
        decision = {"all": False, "quit": False}

        def accept(hunk) -> bool:
            if decision["quit"]:
                return False
            if decision["all"]:
                return True
            print(f"\n{name} @ line {hunk.original_start + 1} ({hunk.tag})")
            for line in hunk.original:
                print(f"- {line.rstrip(chr(10))}")
            for line in hunk.modified:
                print(f"+ {line.rstrip(chr(10))}")
            answer = _ask("Apply this change? [y]es/[n]o/[a]ll/[q]uit: ")
            if answer == "a":
                decision["all"] = True
                return True
            if answer == "q":
                decision["quit"] = True
                return False
            return answer == "y"

        merged = patch_selected(original, modified, accept)
        return None if merged == original else merged
    return _patch

def _run(args, session) -> int:
    if args.prompt:
        session.prompt = args.prompt
    if args.modify is not None:
        session.modify_code = args.modify

    def output_func(msg: str, end: str = "\n", flush: bool = False):
        print(msg, end=end, file=sys.stderr, flush=flush)

    def stream_func(text: str, end: str = "", flush: bool = False):
        print(text, end=end, flush=True)

    service = OpenAICompletionService(model=args.model)
    controller = RequestController(
        service,
        result=application_state.state.result,
        shadows=application_state.state.shadows,
        notify_state_changed=notify_state_changed,
        output_func=output_func,
        stream_func=stream_func,
    )

    try:
        request = controller.run(session, streaming=args.streaming)
    except ValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        while controller.is_running:
            service.pump()
    except KeyboardInterrupt:
        controller.cancel()
        print("\nCancelled", file=sys.stderr)
        return 130

    try:
        written = request.future.result(timeout=0)
    except CancelledError:
        print("\nCancelled", file=sys.stderr)
        return 130
    except Exception as e:
        print(f"\nFailed: {e}", file=sys.stderr)
        return 1

    if request.modify_code:
        if written:
            print(f"\nShadow files written ({len(written)}):")
            for name in written:
                print(f"  {name}")
            if args.review:
                open_diff_report(session)
        else:
            print("\nNo file blocks found in the response.", file=sys.stderr)
    return 0

def run_cli(argv: list[str] | None = None) -> int:
    """Run in CLI mode with subcommands. Returns the exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(console=True, verbose=args.verbose)

    if not args.command:
        parser.print_help()
        return 0

    if args.command == "config":
        if args.model:
            config.set_model(args.model)
            print(f"Model: {args.model}")
        if args.streaming:
            config.set_streaming(args.streaming == "on")
            print(f"Streaming: {args.streaming}")
        if args.prefix:
            try:
                config.set_shadow_prefix(args.prefix)
            except ValueError as e:
                print(f"Error: {e}", file=sys.stderr)
                return 1
            print(f"Shadow prefix: {args.prefix}")
        if args.pattern:
            config.set_default_pattern(args.pattern)
            print(f"Default pattern: {args.pattern}")
        if args.project_index:
            config.set_use_project_index(args.project_index == "on")
            print(f"Project index: {args.project_index}")
        if args.system_prompt is not None:
            config.set_extra_system_prompt(args.system_prompt)
            print("Updated system prompt.")
        if args.api_key or args.base_url:
            cfg = sys.modules["orgai.config"]
            update_core_settings(args.api_key or cfg.API_KEY, args.base_url or cfg.API_BASE_URL)
            print(f"API endpoint: {cfg.API_BASE_URL}")
        if args.path:
            print(str(APP_DATA_DIR))
        return 0

    base_dir = Path(args.directory) if args.directory else Path.cwd()
    if not base_dir.is_dir():
        print(f"Error: Not a directory: {base_dir}", file=sys.stderr)
        return 1
    session = load_session(base_dir)
    shadows = application_state.state.shadows

    if args.command == "search":
        if args.patterns:
            session.search(" ".join(args.patterns))
        print(f"Pattern: {session.search_pattern}")
        _print_files(session)
        save_session()

    elif args.command == "state":
        print(f"Directory: {session.base_dir}")
        print(f"Pattern: {session.search_pattern}")
        print(f"Mode: {'modify code' if session.modify_code else 'answer'}")
        print(f"Prompt: {session.prompt or '(none)'}")
        _print_files(session)
        tokens = estimate_session_tokens(session)
        if tokens:
            print(f"Prompt size: ~{tokens} tokens")

    elif args.command in ("select", "deselect"):
        chosen = args.command == "select"
        names = _matching(session, args.patterns)
        if chosen and args.only:
            for sel in session.files:
                session.set_chosen(sel.file, False)
        for name in names:
            session.set_chosen(name, chosen)
            print(f"{'Selected' if chosen else 'Deselected'}: {name}")
        save_session()
        print(f"\nTotal: {len(session.chosen_files())} of {len(session.files)} files selected")

    elif args.command == "region":
        sel = session.find(args.file)
        if sel is None:
            print(f"Error: Unknown file: {args.file}", file=sys.stderr)
            return 1
        if args.clear:
            session.set_region(args.file, None)
            print(f"{args.file}: whole file")
        else:
            if args.start is None:
                print("Error: Give a line range or --clear", file=sys.stderr)
                return 1
            end = args.end if args.end is not None else args.start
            try:
                region = region_from_lines(file_cache.get_or_read(sel.full_path), args.start, end)
            except (OSError, ValueError) as e:
                print(f"Error: {e}", file=sys.stderr)
                return 1
            session.set_region(args.file, region)
            print(f"{args.file}: lines {args.start}-{end}")
        save_session()

    elif args.command == "run":
        return _run(args, session)

    elif args.command == "result":
        text = application_state.state.result.text
        if text:
            print(text)
            print(f"\n(~{estimate_tokens(text)} tokens)", file=sys.stderr)
        else:
            print("No result yet")

    elif args.command == "diff":
        targets = _targets(session, args.files)
        if not targets:
            print("No shadow files")
        for name in targets:
            diff = shadow_diff(session, name)
            print(diff if diff else f"{name}: no changes")

    elif args.command == "review":
        if not session.has_modifications():
            print("No shadow files to review")
            return 0
        path = open_diff_report(session)
        if path is None:
            return 1
        print(f"Opened: {path}")

    elif args.command == "merge":
        targets = _targets(session, args.files)
        if not targets:
            print("No shadow files to merge")
            return 0
        for name in targets:
            diff_and_patch = (lambda original, modified: modified) if args.yes else interactive_patch(name)
            try:
                applied = merge_shadow(session, shadows, name, diff_and_patch)
            except OSError as e:
                print(f"Error merging {name}: {e}", file=sys.stderr)
                return 1
            print(f"{name}: {'merged' if applied else 'unchanged'}")

    elif args.command == "reset":
        try:
            if args.files:
                for name in args.files:
                    removed = shadows.remove_one(session, name)
                    print(f"{name}: {'removed' if removed else 'no shadow file'}")
            else:
                removed = shadows.remove_all(session)
                print("Removed all shadow files" if removed else "No shadow files")
        except OSError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        if args.forget:
            forget_session(session.base_dir)
            print("Forgot saved session")

    return 0
