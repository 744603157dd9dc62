"""Exception types raised at the provider and process-control seams."""

from __future__ import annotations


class AssistantError(Exception):
    """Base class for it-assistant errors."""


class ProviderUnavailable(AssistantError):
    """A metrics sub-call failed or timed out."""

    def __init__(self, metric: str, reason: str) -> None:
        super().__init__(f"{metric} unavailable: {reason}")
        self.metric = metric
        self.reason = reason


class ProcessVanished(AssistantError):
    """The target process exited before it could be terminated."""

    def __init__(self, pid: int) -> None:
        super().__init__(f"Process with PID {pid} no longer exists")
        self.pid = pid


class TerminationFailed(AssistantError):
    """The target process exists but could not be terminated."""

    def __init__(self, pid: int, reason: str) -> None:
        super().__init__(f"Could not terminate process {pid}: {reason}")
        self.pid = pid
        self.reason = reason


class PermissionDenied(AssistantError):
    """A cache entry could not be removed."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Could not remove {path}: {reason}")
        self.path = path
        self.reason = reason


class UnknownIssue(AssistantError):
    """No remediation handler is registered for the issue id."""

    def __init__(self, issue_id: str) -> None:
        super().__init__(f"No fix available for issue: {issue_id}")
        self.issue_id = issue_id
