"""Request lifecycle: one in-flight completion, from prompt to shadow files."""
import logging
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from .config import config
from .errors import CompletionError, RequestInProgressError, ShadowPathError
from .llm import CompletionHandle, CompletionService, build_prompt
from .patching import parse_file_blocks
from .session import Session
from .shadow import ShadowFileManager

logger = logging.getLogger(__name__)

OutputFunc = Callable[..., None]
StateChangedFunc = Callable[[Session], None]

class RequestState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETING = "completing"

class ResultBuffer:
    """Accumulated model output. Each run appends a section; parsing starts at the section's output."""

    def __init__(self, text: str = ""):
        self.text = text

    def open_section(self, request: str) -> int:
        if self.text and not self.text.endswith("\n\n"):
            self.text += "\n" if self.text.endswith("\n") else "\n\n"
        self.text += f"## {request.strip().splitlines()[0]}\n\n"
        return len(self.text)

    def append(self, chunk: str) -> None:
        self.text += chunk

@dataclass
class Request:
    session: Session
    start_position: int
    streaming: bool
    modify_code: bool
    response_handle: CompletionHandle | None = None
    future: Future = field(default_factory=Future)
    started_at: float = field(default_factory=time.time)
    pending: str = ""  # batch payload held until completion

class RequestController:
    """
    Owns at most one Request. Transitions: IDLE -run-> RUNNING -done-> COMPLETING -> IDLE.

    Service callbacks must be delivered on the thread that owns the session.
    """

    def __init__(
        self,
        service: CompletionService,
        result: ResultBuffer | None = None,
        shadows: ShadowFileManager | None = None,
        notify_state_changed: StateChangedFunc | None = None,
        output_func: OutputFunc | None = None,
        stream_func: OutputFunc | None = None,
    ):
        self.service = service
        self.result = result or ResultBuffer()
        self.shadows = shadows
        self.notify_state_changed = notify_state_changed
        self.output_func = output_func
        self.stream_func = stream_func
        self.state = RequestState.IDLE
        self.request: Request | None = None

    @property
    def is_running(self) -> bool:
        return self.request is not None

    def _notify(self, session: Session) -> None:
        if self.notify_state_changed:
            self.notify_state_changed(session)

    def _shadows_for(self, session: Session) -> ShadowFileManager:
        if self.shadows is None or str(self.shadows.base_dir) != session.base_dir:
            self.shadows = ShadowFileManager(session.base_dir)
        return self.shadows

    def run(self, session: Session, streaming: bool | None = None) -> Request:
        """Build the prompt and send it. Validation errors are raised before anything starts."""
        if self.request is not None:
            raise RequestInProgressError()
        prompt = build_prompt(session)
        if streaming is None:
            streaming = config.streaming

        start = self.result.open_section(session.prompt)
        request = Request(session, start, streaming, session.modify_code)
        self.request = request
        self.state = RequestState.RUNNING
        logger.info(f"Sending {len(session.chosen_files())} file(s), {len(prompt)} chars")

        try:
            request.response_handle = self.service.complete(
                prompt, streaming,
                lambda text, done: self._on_chunk(request, text, done),
                lambda exc: self._on_error(request, exc),
            )
        except Exception as e:
            self._on_error(request, e)
        self._notify(session)
        return request

    def _on_chunk(self, request: Request, text: str, done: bool) -> None:
        if request is not self.request:
            logger.debug("Dropping output of a request that is no longer active")
            return
        if text:
            if request.streaming:
                self.result.append(text)
                if self.stream_func:
                    self.stream_func(text, end="")
            else:
                request.pending += text
        if done:
            self._complete(request)

    def _complete(self, request: Request) -> None:
        self.state = RequestState.COMPLETING
        session = request.session

        if request.pending:
            self.result.append(request.pending)
            if self.stream_func:
                self.stream_func(request.pending, end="")
            request.pending = ""
        if self.output_func:
            self.output_func(f"\nDone in {time.time() - request.started_at:.1f}s")

        written: dict[str, str] = {}
        error: BaseException | None = None
        if request.modify_code:
            files = parse_file_blocks(self.result.text[request.start_position:])
            logger.info(f"Parsed {len(files)} file(s) from the response")
            shadows = self._shadows_for(session)
            for name, content in files.items():
                try:
                    written[name] = str(shadows.persist(session, name, content))
                except ShadowPathError as e:
                    logger.warning(f"Skipping {name}: {e}")
                except OSError as e:
                    logger.error(f"Failed to write shadow for {name}: {e}")
                    error = e
                    break

        self.request = None
        self.state = RequestState.IDLE
        if error is not None:
            request.future.set_exception(error)
        else:
            request.future.set_result(written)
        self._notify(session)

    def _on_error(self, request: Request, exc: BaseException) -> None:
        if request is not self.request:
            return
        logger.error(f"Completion failed: {exc}")
        self.request = None
        self.state = RequestState.IDLE
        error = CompletionError(f"Completion failed: {exc}")
        error.__cause__ = exc
        request.future.set_exception(error)
        self._notify(request.session)

    def cancel(self) -> bool:
        """Abort the active request without writing anything. Returns False when idle."""
        request = self.request
        if request is None:
            return False
        if request.response_handle is not None:
            request.response_handle.cancel()
        self.request = None
        self.state = RequestState.IDLE
        request.future.cancel()
        logger.info("Request cancelled")
        self._notify(request.session)
        return True
