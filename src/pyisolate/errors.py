"""Error types for isolated sandboxes."""
from typing import Any, Dict, Optional

from mcp.types import ErrorData, INTERNAL_ERROR, INVALID_PARAMS, INVALID_REQUEST

from pyisolate.logging import get_logger


def log_error(
    error: Exception,
    context: Optional[Dict[str, Any]] = None,
    logger: Optional[Any] = None,
) -> None:
    """Log an error with context."""
    logger = logger or get_logger(__name__)

    error_info = {
        "error_type": error.__class__.__name__,
        "error_message": str(error),
    }
    if context:
        error_info["context"] = context
    if isinstance(error, IsolateError):
        error_info["code"] = error.code
        error_info["details"] = error.details

    logger.error({"event": "isolate_error", **error_info})


class IsolateError(Exception):
    """Base error class for sandbox operations."""

    def __init__(
        self,
        message: str,
        code: int = INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.details = details or {}

    def to_error_data(self) -> ErrorData:
        """Convert to ErrorData format."""
        return ErrorData(code=self.code, message=str(self), data=self.details)


class ConfigError(IsolateError):
    """Declaration source or option is malformed, or missing when required."""

    def __init__(self, message: str, file: Optional[str] = None):
        super().__init__(
            message,
            code=INVALID_PARAMS,
            details={"file": file} if file else {},
        )
        self.file = file


class ConflictError(IsolateError):
    """Merged version constraints for one declared name are unsatisfiable."""

    def __init__(self, name: str, requirement: str):
        super().__init__(
            f"Conflicting requirements for {name}: {requirement}",
            code=INVALID_REQUEST,
            details={"name": name, "requirement": requirement},
        )
        self.name = name
        self.requirement = requirement


class InstallError(IsolateError):
    """The installer failed for a declared package."""

    def __init__(
        self,
        name: str,
        requirement: str,
        returncode: Optional[int] = None,
        output: str = "",
    ):
        super().__init__(
            f"Failed to install {name} ({requirement or '*'})"
            + (f" with code {returncode}" if returncode is not None else ""),
            details={
                "name": name,
                "requirement": requirement,
                "returncode": returncode,
                "output": output,
            },
        )
        self.name = name
        self.requirement = requirement
        self.returncode = returncode
        self.output = output


class ActivationError(IsolateError):
    """No installed version satisfies a declared requirement."""

    def __init__(self, name: str, requirement: str, reason: Optional[str] = None):
        message = reason or f"No installed version of {name} satisfies '{requirement or '*'}'"
        super().__init__(
            message,
            code=INVALID_REQUEST,
            details={"name": name, "requirement": requirement},
        )
        self.name = name
        self.requirement = requirement


class UninstallError(IsolateError):
    """Removing an installed distribution failed."""

    def __init__(self, full_name: str, reason: str):
        super().__init__(
            f"Failed to uninstall {full_name}: {reason}",
            details={"full_name": full_name, "reason": reason},
        )
        self.full_name = full_name
        self.reason = reason
