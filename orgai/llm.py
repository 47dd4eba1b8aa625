"""Prompt building and the completion service backed by the OpenAI API."""
import logging
import queue
import sys
import threading
import time
from typing import Any, Callable, Protocol

from pattern import FENCE, PROMPT_INTRO, MODIFY_INSTRUCTION, ANSWER_INSTRUCTION
from .config import config, QUEUE_POLL_INTERVAL_MS
from .errors import EmptyPromptError, EmptySelectionError
from .fs import file_cache
from .session import FileSelection, Region, Session

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[str, bool], None]
ErrorCallback = Callable[[BaseException], None]

def expand_region(text: str, region: Region) -> str:
    """Return the full lines covered by `region`."""
    start = max(0, min(region[0], len(text)))
    end = max(start, min(region[1], len(text)))
    # A region that stops right after a newline ends on that line
    if end > start and text[end - 1] == "\n":
        end -= 1
    line_start = text.rfind("\n", 0, start) + 1
    line_end = text.find("\n", end)
    if line_end == -1:
        line_end = len(text)
    return text[line_start:line_end]

def build_file_block(selection: FileSelection) -> str:
    content = file_cache.get_or_read(selection.full_path)
    if selection.region is not None:
        content = expand_region(content, selection.region)
    if not content.endswith("\n"):
        content += "\n"
    return f"{selection.file}\n{FENCE}\n{content}{FENCE}\n\n"

def build_prompt(session: Session) -> str:
    """Serialize the chosen files of `session` into the prompt envelope."""
    chosen = session.chosen_files()
    if not chosen:
        raise EmptySelectionError()
    if not session.prompt or not session.prompt.strip():
        raise EmptyPromptError()

    parts = [PROMPT_INTRO.format(request=session.prompt)]
    for selection in chosen:
        parts.append(build_file_block(selection))
    parts.append(MODIFY_INSTRUCTION if session.modify_code else ANSWER_INSTRUCTION)
    return "".join(parts)

def build_messages(prompt: str) -> list[dict[str, Any]]:
    messages: list[dict[str, Any]] = []
    if config.extra_system_prompt:
        messages.append({"role": "system", "content": config.extra_system_prompt})
    messages.append({"role": "user", "content": prompt})
    return messages

class CompletionHandle(Protocol):
    def cancel(self) -> None: ...

class CompletionService(Protocol):
    def complete(self, prompt: str, streaming: bool, callback: ChunkCallback, errback: ErrorCallback) -> CompletionHandle: ...

def _create_openai_client():
    from openai import OpenAI
    # Access module directly to get latest values
    cfg = sys.modules["orgai.config"]
    return OpenAI(base_url=cfg.API_BASE_URL, api_key=cfg.API_KEY)

class StreamHandle:
    """Handle of one in-flight completion running on a worker thread."""

    def __init__(self):
        self.cancel_event = threading.Event()
        self.thread: threading.Thread | None = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        self.cancel_event.set()

class OpenAICompletionService:
    """
    Runs chat completions on a worker thread.

    Callbacks are never invoked on the worker: they are queued and delivered by
    `pump()` on the thread that owns the session, so session state is only ever
    touched from one thread.
    """

    def __init__(self, model: str | None = None, client=None):
        self.model = model
        self._client = client
        self.events: queue.Queue = queue.Queue()

    @property
    def client(self):
        if self._client is None:
            self._client = _create_openai_client()
        return self._client

    def complete(self, prompt: str, streaming: bool, callback: ChunkCallback, errback: ErrorCallback) -> StreamHandle:
        handle = StreamHandle()
        handle.thread = threading.Thread(
            target=self._worker, args=(handle, prompt, streaming, callback, errback), daemon=True
        )
        handle.thread.start()
        return handle

    def _post(self, handle: StreamHandle, func: Callable, *args: Any) -> None:
        self.events.put((handle, func, args))

    def _worker(self, handle: StreamHandle, prompt: str, streaming: bool, callback: ChunkCallback, errback: ErrorCallback) -> None:
        model = self.model or config.model
        start_time = time.time()
        received = 0
        logger.info(f"Generating with model: {model} ({'streaming' if streaming else 'batch'})")
        try:
            if streaming:
                stream = self.client.chat.completions.create(
                    model=model, messages=build_messages(prompt), stream=True
                )
                for chunk in stream:
                    if handle.cancelled:
                        logger.info("Generation cancelled by user")
                        return
                    if not chunk.choices:
                        continue
                    content = chunk.choices[0].delta.content
                    if content:
                        received += len(content)
                        self._post(handle, callback, content, False)
                self._post(handle, callback, "", True)
            else:
                response = self.client.chat.completions.create(
                    model=model, messages=build_messages(prompt), stream=False
                )
                if handle.cancelled:
                    return
                text = ""
                if response.choices:
                    text = response.choices[0].message.content or ""
                received = len(text)
                self._post(handle, callback, text, True)
        except Exception as e:
            logger.exception(f"Error during completion: {e}")
            self._post(handle, errback, e)
            return
        logger.info(f"Received {received} chars in {time.time() - start_time:.2f}s")

    def pump(self, timeout: float | None = None) -> int:
        """Deliver queued callbacks on the calling thread. Returns how many were delivered."""
        delivered = 0
        wait = QUEUE_POLL_INTERVAL_MS / 1000 if timeout is None else timeout
        while True:
            try:
                handle, func, args = self.events.get(timeout=wait) if delivered == 0 else self.events.get_nowait()
            except queue.Empty:
                return delivered
            if handle.cancelled:
                continue
            func(*args)
            delivered += 1
