"""tcsignal.errors - Exception taxonomy for a signal run.

Every fatal condition is a ``SignalError``. Command failure is not an
exception: it becomes the published FAILURE status.
"""

from __future__ import annotations


class SignalError(Exception):
    """Base class for errors that abort a run with the infrastructure exit code."""


class ConfigError(SignalError):
    """Invalid or incomplete invocation configuration."""


class IdentityError(SignalError):
    """Instance identity could not be resolved from the metadata service."""


class PublishError(SignalError):
    """The signal could not be delivered to the queue."""


class DeadlineExceeded(SignalError):
    """A deadline expired before the guarded operation finished."""
