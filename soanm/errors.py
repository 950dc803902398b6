"""Exception types shared across the sponsor and enrollee sides."""

from __future__ import annotations


class SoanmError(Exception):
    """Base error for soanm operations."""


class ChannelError(SoanmError):
    """Session setup failed, the code did not match, or the transport was lost."""


class BundleError(SoanmError, OSError):
    """A bundle could not be decompressed, or holds an unsafe member."""
