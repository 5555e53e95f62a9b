"""Test YAML schema validation and config loading.

Tests for mask_atlas.utils.validators:
    - Load the example sheet config
    - Reject invalid configs with messages naming the file / offending field
    - Sheet options: bounds, unknown keys, conversion to plain options
    - Atlas metadata structure (triples, integer offsets, unique keys)

Run:
    pytest tests/test_schemas.py -v
"""

import sqlite3
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from mask_atlas.utils import validators


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture(scope="module")
def project_root():
    """Project root directory."""
    return Path(__file__).parent.parent


def _write_cfg(tmp_path, data, name="sheet.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data))
    return path


@pytest.fixture()
def minimal_cfg():
    return {
        "schema": "sheet.v1",
        "sheet": {"name": "m", "dim": 16},
        "frames": [{"key": 0}, {"key": 1, "painter": "diagonal"}],
    }


# ============================================================================
# SHEET CONFIG
# ============================================================================

def test_load_example_config(project_root):
    cfg = validators.load_sheet_config(project_root / "configs" / "sheet_example.yaml")

    assert cfg.schema_version == "sheet.v1"
    assert cfg.sheet.name == "fills"
    assert cfg.sheet.method == "database_file"
    assert [f.key for f in cfg.frames] == [0, 1, 2, 3, 4, 5, 6]
    assert cfg.frames[6].rect == (16, 16, 32, 32)
    assert cfg.logging.log_level == "INFO"


def test_load_minimal_defaults(tmp_path, minimal_cfg):
    cfg = validators.load_sheet_config(_write_cfg(tmp_path, minimal_cfg))

    assert cfg.frames[0].painter == "fill"
    assert cfg.frames[0].fraction == 0.5
    assert (cfg.stage.width, cfg.stage.height) == (1024, 768)
    assert cfg.logging.json_lines is False


def test_missing_config(tmp_path):
    with pytest.raises(FileNotFoundError, match="Sheet config not found"):
        validators.load_sheet_config(tmp_path / "nope.yaml")


def test_empty_config(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    with pytest.raises(ValueError, match="Empty sheet config"):
        validators.load_sheet_config(path)


def test_wrong_schema(tmp_path, minimal_cfg):
    minimal_cfg["schema"] = "sheet.v2"
    path = _write_cfg(tmp_path, minimal_cfg)
    with pytest.raises(ValueError, match="sheet.v1") as exc:
        validators.load_sheet_config(path)
    assert str(path) in str(exc.value)


def test_rect_painter_requires_rect(tmp_path, minimal_cfg):
    minimal_cfg["frames"] = [{"key": 0, "painter": "rect"}]
    with pytest.raises(ValueError, match="requires 'rect"):
        validators.load_sheet_config(_write_cfg(tmp_path, minimal_cfg))


def test_duplicate_frame_keys(tmp_path, minimal_cfg):
    minimal_cfg["frames"] = [{"key": 0}, {"key": 0}]
    with pytest.raises(ValueError, match="Duplicate frame keys"):
        validators.load_sheet_config(_write_cfg(tmp_path, minimal_cfg))


def test_fraction_out_of_range(tmp_path, minimal_cfg):
    minimal_cfg["frames"] = [{"key": 0, "fraction": 1.5}]
    with pytest.raises(ValueError, match="fraction"):
        validators.load_sheet_config(_write_cfg(tmp_path, minimal_cfg))


def test_unknown_sheet_option(tmp_path, minimal_cfg):
    minimal_cfg["sheet"]["dimz"] = 3
    with pytest.raises(ValueError, match="dimz"):
        validators.load_sheet_config(_write_cfg(tmp_path, minimal_cfg))


def test_logging_level_normalised():
    assert validators.LoggingV1(log_level="debug").log_level == "DEBUG"
    with pytest.raises(ValidationError):
        validators.LoggingV1(log_level="chatty")


def test_logging_json_alias():
    assert validators.LoggingV1(**{"json": True}).json_lines is True


# ============================================================================
# SHEET OPTIONS
# ============================================================================

def test_sheet_options_bounds():
    with pytest.raises(ValidationError):
        validators.SheetOptionsV1(name="m", dim=0)
    with pytest.raises(ValidationError):
        validators.SheetOptionsV1(name="m", method="ftp")


def test_sheet_options_to_opts_drops_unset():
    opts = validators.SheetOptionsV1(name="m", pix_dim=4, npix=3, id=2).to_opts()
    assert opts["name"] == "m"
    assert opts["pix_dim"] == 4 and opts["npix"] == 3 and opts["id"] == 2
    assert "dim" not in opts and "data" not in opts
    assert opts["recreate"] is False


def test_sheet_options_keep_live_handle():
    conn = sqlite3.connect(":memory:")
    opts = validators.SheetOptionsV1(name="m", dim=8, method="database_handle", data=conn).to_opts()
    assert opts["data"] is conn
    conn.close()


def test_coerce_options():
    model = validators.SheetOptionsV1(name="m", dim=8)
    assert validators.coerce_options(model)["dim"] == 8
    raw = {"name": "m", "dim": 8}
    coerced = validators.coerce_options(raw)
    assert coerced == raw and coerced is not raw
    assert validators.coerce_options(None) is None


# ============================================================================
# ATLAS METADATA
# ============================================================================

def test_metadata_valid_payload():
    meta = validators.AtlasMetadataV1(frames=[0, 1, 2, "b", -3, 4], xdim=8, ydim=12)
    assert meta.to_payload() == {"frames": [0, 1, 2, "b", -3, 4], "xdim": 8, "ydim": 12}


@pytest.mark.parametrize(
    "frames,match",
    [
        ([], "at least 3"),
        ([0, 1], "at least 3"),
        ([0, 1, 2, 3], "triples"),
        ([0, 1.5, 2], "integer"),
        ([0, 1, 2, 0, 3, 4], "unique"),
    ],
)
def test_metadata_invalid_frames(frames, match):
    with pytest.raises(ValidationError, match=match):
        validators.AtlasMetadataV1(frames=frames, xdim=8, ydim=8)


def test_metadata_dims_positive():
    with pytest.raises(ValidationError):
        validators.AtlasMetadataV1(frames=[0, 1, 2], xdim=0, ydim=8)


def test_metadata_float_keys():
    meta = validators.AtlasMetadataV1(frames=[0.25, 1, 2, "b", 3, 4], xdim=8, ydim=8)
    assert meta.frames[0::3] == [0.25, "b"]


@pytest.mark.parametrize("key", [True, None, [1]])
def test_metadata_rejects_non_scalar_keys(key):
    with pytest.raises(ValidationError):
        validators.AtlasMetadataV1(frames=[key, 1, 2], xdim=8, ydim=8)


def test_frame_spec_float_key():
    assert validators.FrameSpecV1(key=0.25).key == 0.25
    with pytest.raises(ValidationError):
        validators.FrameSpecV1(key=True)
