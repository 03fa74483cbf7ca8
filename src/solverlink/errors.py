"""Error taxonomy shared by transports, discovery and task execution."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class ErrorPayload:
    """Structured error payload handed to notification sinks and the CLI."""

    code: str
    message: str
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": False,
            "error_code": self.code,
            "error": self.message,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class SolverLinkError(Exception):
    """Base exception for all solverlink failures."""

    code: str = "SOLVERLINK_ERROR"

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_payload(self) -> Dict[str, Any]:
        return ErrorPayload(self.code, self.message, self.details or None).to_dict()


class TransportError(SolverLinkError):
    code = "TRANSPORT_ERROR"


class ConnectionLostError(TransportError):
    """The channel is unusable; every outstanding call on it fails."""

    code = "CONNECTION_LOST"

    def __init__(self, message: str = "Connection lost", *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details)


class ProtocolError(TransportError):
    """The backend answered with something that is not a valid response frame."""

    code = "PROTOCOL_ERROR"


class RequestTimeoutError(TransportError):
    code = "REQUEST_TIMEOUT"


class MethodNotSupportedError(SolverLinkError):
    code = "METHOD_NOT_SUPPORTED"

    def __init__(self, method: str, message: Optional[str] = None, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message or f"Method not supported: {method}", details={"method": method, **(details or {})})
        self.method = method


class SolverApplicationError(SolverLinkError):
    """The backend ran the method but reported a semantic failure. Never retried."""

    code = "SOLVER_ERROR"

    def __init__(
        self,
        message: str,
        *,
        error_code: Optional[int] = None,
        data: Any = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        merged = dict(details or {})
        if error_code is not None:
            merged["rpc_code"] = error_code
        if data is not None:
            merged["data"] = data
        super().__init__(message, details=merged)
        self.error_code = error_code
        self.data = data


class ContractViolationError(SolverLinkError):
    code = "CONTRACT_VIOLATION"


class ContractConflictError(SolverLinkError):
    code = "CONTRACT_CONFLICT"


class TaskCanceledError(SolverLinkError):
    code = "TASK_CANCELED"

    def __init__(self, message: str = "Canceled", *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details)


class CommandNotAllowedError(SolverLinkError):
    code = "COMMAND_NOT_ALLOWED"


class TraceBoundsError(SolverLinkError, IndexError):
    code = "STEP_OUT_OF_RANGE"

    def __init__(self, index: int, step_count: int):
        super().__init__(
            f"Step {index} is outside [0, {step_count})",
            details={"index": index, "step_count": step_count},
        )
        self.index = index
        self.step_count = step_count


def error_response(code: str, message: str, *, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Return a standardised error payload."""
    return ErrorPayload(code, message, details).to_dict()


__all__ = [
    "ErrorPayload",
    "SolverLinkError",
    "TransportError",
    "ConnectionLostError",
    "ProtocolError",
    "RequestTimeoutError",
    "MethodNotSupportedError",
    "SolverApplicationError",
    "ContractViolationError",
    "ContractConflictError",
    "TaskCanceledError",
    "CommandNotAllowedError",
    "TraceBoundsError",
    "error_response",
]
