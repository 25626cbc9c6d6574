"""Application-level exception types for the daemon agent."""

from __future__ import annotations


class DaemonError(Exception):
    """Base exception for the daemon agent."""


class ConfigurationError(DaemonError):
    """Base exception for configuration and startup validation errors."""


class WorkspaceNotFoundError(ConfigurationError):
    """Raised when the configured workspace path does not exist."""


class ModelNotConfiguredError(ConfigurationError):
    """Raised when model configuration is missing."""


class InvalidModelFormatError(ConfigurationError):
    """Raised when model format is not provider:model."""


class ApiKeyNotConfiguredError(ConfigurationError):
    """Raised when an API key is required but missing."""


class TurnError(DaemonError):
    """Raised when a turn fails in the provider or its transport."""


class OperationCancelledError(DaemonError):
    """Raised from a guarded wait once its cancellation token fires."""


class VoiceInputError(DaemonError):
    """Raised when voice capture or transcription cannot produce input."""


class ToolUnavailableError(DaemonError):
    """Raised when a tool cannot run in the current context."""
