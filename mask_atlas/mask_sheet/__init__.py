"""Mask atlas core: grid planning, frame registry, persistence, capture, facade.

Modules:
    - grid: cell pitch, capacity and the placement cursor
    - registry: raw placements and their center-relative correction
    - persistence: metadata through raw / sqlite / PNG text chunk
    - capture: per-frame capture paths and deferred snapshot cleanup
    - naming: options -> frame size and atlas filename
    - sheet: MaskSheet and DataSheet
    - rect_mask: single rectangular masks
    - painters: built-in frame painters

Convenience imports:
    from mask_atlas.mask_sheet import MaskSheet, DataSheet, new_mask
"""

from .capture import CaptureStrategy, ResourceOwnershipTable
from .errors import (
    CapacityError,
    CaptureError,
    MaskSheetError,
    MissingOptionError,
    ProtectedLocationError,
    SheetStateError,
)
from .naming import resolve_sheet_spec
from .persistence import PersistenceAdapter
from .rect_mask import new_mask
from .sheet import DataSheet, MaskSheet

__all__ = [
    'CaptureStrategy',
    'ResourceOwnershipTable',
    'MaskSheetError',
    'MissingOptionError',
    'SheetStateError',
    'CapacityError',
    'CaptureError',
    'ProtectedLocationError',
    'resolve_sheet_spec',
    'PersistenceAdapter',
    'new_mask',
    'MaskSheet',
    'DataSheet',
]
