"""Exceptions raised by the orgai core."""


class OrgAIError(Exception):
    """Base exception for orgai errors."""
    pass


class ValidationError(OrgAIError):
    """Raised when a request cannot be built from the session."""
    pass


class EmptySelectionError(ValidationError):
    """Raised when no file is chosen for the prompt."""
    def __init__(self, message: str = "No file is selected."):
        super().__init__(message)


class EmptyPromptError(ValidationError):
    """Raised when the user's request text is empty."""
    def __init__(self, message: str = "The prompt is empty."):
        super().__init__(message)


class RequestInProgressError(OrgAIError):
    """Raised when a request is started while another one is running."""
    def __init__(self, message: str = "A request is already running. Cancel it first."):
        super().__init__(message)


class CompletionError(OrgAIError):
    """Raised when the completion service fails."""
    pass


class ShadowPathError(OrgAIError):
    """Raised when a file name from the response resolves outside the project."""
    pass
