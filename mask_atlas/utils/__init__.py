"""Cross-cutting utilities (lowest dependency layer).

This package provides shared primitives for:
    - Unified logging (logging_config)
    - Atomic I/O and the file service (fs)
    - Config / metadata schemas (validators)

No module in utils/ may import from upper layers (raster, mask_sheet).

Convenience imports:
    from mask_atlas.utils import fs, validators
    from mask_atlas.utils.logging_config import setup_logging, get_logger
"""

from . import fs
from . import logging_config
from . import validators

from .logging_config import get_logger, push_context, setup_logging

__all__ = [
    'fs',
    'logging_config',
    'validators',
    'setup_logging',
    'get_logger',
    'push_context',
]
