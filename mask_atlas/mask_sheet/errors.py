"""Fatal precondition errors raised by mask sheets.

These signal programmer errors (bad options, wrong state, no capacity,
content that cannot be captured).  The package never catches them;
recoverable conditions such as stale cached metadata are reported as
absent data instead.
"""

from __future__ import annotations


class MaskSheetError(Exception):
    """Base exception for all mask sheet errors."""

    pass


class MissingOptionError(MaskSheetError):
    """A required option is missing or not a positive integer."""

    pass


class SheetStateError(MaskSheetError):
    """Operation not valid in the sheet's current state."""

    pass


class CapacityError(MaskSheetError):
    """The grid has no free cell left for another frame."""

    pass


class CaptureError(MaskSheetError):
    """Frame content cannot be brought fully onto the visible canvas."""

    pass


class ProtectedLocationError(MaskSheetError):
    """A stale atlas lives in a location this process may not modify."""

    pass
