"""
Exception hierarchy for the GGUF launcher.

Every error carries an optional ``hint`` with remediation steps that the CLI
prints below the error message.
"""

from typing import Optional


class LauncherError(RuntimeError):
    """Base class for all launcher errors."""

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.hint = hint


class ConfigError(LauncherError):
    """Configuration file contains invalid values."""

    def __init__(self, problems, hint: Optional[str] = None):
        self.problems = list(problems)
        lines = "\n".join(f"  - {p}" for p in self.problems)
        super().__init__(
            f"Invalid configuration ({len(self.problems)} problem(s)):\n{lines}",
            hint or "Edit config.env ('gguf-launcher config') and fix the listed keys",
        )


class PrerequisiteError(LauncherError):
    """A required binary, client or file is missing."""


class BinaryNotFoundError(PrerequisiteError):
    """llama.cpp binary is not on PATH."""


class DownloadClientError(PrerequisiteError):
    """huggingface_hub is not available."""


class ModelNotFoundError(PrerequisiteError):
    """The model file or shard set is not on disk."""


class ResourceConflictError(LauncherError):
    """A resource needed to proceed is unavailable."""


class PortInUseError(ResourceConflictError):
    """Another process is listening on the server port."""


class InsufficientDiskSpaceError(ResourceConflictError):
    """Not enough free disk space for the requested quantization."""

    def __init__(self, message: str, available_gb: float, required_gb: float, hint: Optional[str] = None):
        super().__init__(message, hint)
        self.available_gb = available_gb
        self.required_gb = required_gb


class DownloadError(LauncherError):
    """Model download failed after all retries."""


class UsageError(LauncherError):
    """Invalid command line usage, such as a missing prompt."""
