"""mask_atlas: packed mask atlases with persistent placement metadata.

Layers (imports only go downward):
    mask_sheet/   atlas building, reuse validation, persistence, capture
    raster/       reference numpy/Pillow renderer and scene objects
    utils/        logging, atomic file IO, pydantic schemas
"""

__version__ = "0.1.0"
