"""Exception types shared across the project."""

from __future__ import annotations


class ShowrecError(Exception):
    """Base class for errors raised by showrec."""


class ConfigurationError(ShowrecError):
    """The configuration document is missing or malformed."""


__all__ = ["ShowrecError", "ConfigurationError"]
