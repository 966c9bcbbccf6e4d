"""
Failure taxonomy for xdeploy deployments.

Every failure surfaced by the runners and the orchestrator is a
DeploymentError subclass carrying a short machine-readable error code, so
the CLI and any wrapping UI can branch on it without parsing messages.
"""

from typing import Optional


class DeploymentError(Exception):
    """Base error for build, install and launch failures."""
    def __init__(self, message: str, error_code: str, technical_details: str = "", original_error: Exception = None):
        super().__init__(message)
        self.error_code = error_code
        self.technical_details = technical_details
        self.original_error = original_error

    @property
    def exit_code(self) -> int:
        return 1


class LaunchError(DeploymentError):
    """The external tool could not be started at all."""
    def __init__(self, command: str, original_error: OSError):
        super().__init__(
            message=f"Failed to launch {command.split(' ', 1)[0]}: {original_error.strerror or original_error}",
            error_code="LAUNCH_FAILED",
            technical_details=command,
            original_error=original_error,
        )
        self.command = command


class CommandFailedError(DeploymentError):
    """The external tool ran and exited with a non-zero status."""
    def __init__(self, command: str, exit_code: int):
        super().__init__(
            message=f"Command failed (exit {exit_code}): {command}",
            error_code="COMMAND_FAILED",
            technical_details=command,
        )
        self.command = command
        self._exit_code = exit_code

    @property
    def exit_code(self) -> int:
        return self._exit_code


class PreBuildScriptError(DeploymentError):
    """A scheme pre-build script exited with a non-zero status."""
    def __init__(self, exit_code: int, script_index: Optional[int] = None):
        details = f"script #{script_index + 1}" if script_index is not None else ""
        super().__init__(
            message=f"Pre-build script failed (exit {exit_code})",
            error_code="PRE_BUILD_SCRIPT_FAILED",
            technical_details=details,
        )
        self.script_index = script_index
        self._exit_code = exit_code

    @property
    def exit_code(self) -> int:
        return self._exit_code


class DeploymentCancelledError(DeploymentError):
    def __init__(self, message: str = "Deployment cancelled"):
        super().__init__(message=message, error_code="CANCELLED")

    @property
    def exit_code(self) -> int:
        return 130


class DeploymentInProgressError(DeploymentError):
    def __init__(self, message: str = "A deployment is already in progress"):
        super().__init__(message=message, error_code="IN_PROGRESS")
