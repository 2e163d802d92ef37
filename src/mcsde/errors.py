"""Exception types raised by :mod:`mcsde`."""

from __future__ import annotations

__all__ = ["ConfigurationError", "SamplingCancelled"]


class ConfigurationError(ValueError):
    r"""
    Raised when integration or sampling parameters are invalid.

    Validation happens before any path is integrated, so no work is lost
    when this is raised. Values are never clamped into range.
    """


class SamplingCancelled(RuntimeError):
    """Raised when a ``cancel`` event is set while paths are still being integrated."""
