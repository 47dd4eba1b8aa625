"""Facade for the orgai core."""

from .config import (
    config, API_KEY, API_BASE_URL, APP_DATA_DIR, SETTINGS_PATH, DEFAULT_HIDDEN,
    QUEUE_POLL_INTERVAL_MS, TOKENS_PER_CHAR_ESTIMATE, update_core_settings,
    load_json_file, save_json_file, estimate_tokens
)

from .errors import (
    OrgAIError, ValidationError, EmptySelectionError, EmptyPromptError,
    RequestInProgressError, CompletionError, ShadowPathError
)

from .fs import (
    file_cache, expand_patterns, match_files, GitProjectIndex,
    is_binary_file, is_path_within, run_command
)

from .session import FileSelection, Session, region_from_lines

from .llm import (
    build_prompt, build_file_block, expand_region, OpenAICompletionService,
    _create_openai_client
)

from .patching import scan_fences, parse_file_blocks, clean_file_name, merge_shadow

from .shadow import ShadowFileManager

from .workflow import RequestController, RequestState, Request, ResultBuffer

from .analysis import shadow_diff, iter_hunks, patch_selected, open_diff_report
