import pytest
from PIL import Image

from pix.sizing import (
    IMAGE_SIZE_PRESETS,
    PIXEL_SIZES,
    SUPPORTED_ASPECT_RATIOS,
    SizeError,
    infer_aspect_ratio_from_ref,
    output_format_from_path,
    parse_size_flag,
    snap_to_supported_ratio,
)


@pytest.mark.parametrize("ratio", ["9:16", "1:1", "4:3", "16:9"])
def test_supported_ratio_is_kept(ratio):
    assert parse_size_flag(ratio) == ratio


def test_empty_and_blank_input():
    assert parse_size_flag("") == ""
    assert parse_size_flag("   ") == ""


def test_whitespace_is_trimmed():
    assert parse_size_flag("  1:1  ") == "1:1"
    assert parse_size_flag(" 16 : 9 ") == "16:9"


@pytest.mark.parametrize(
    "value,expected",
    [
        ("1024x1024", "1:1"),
        ("1920X1080", "16:9"),
        ("1080x1920", "9:16"),
        ("1600x1200", "4:3"),
    ],
)
def test_pixel_form(value, expected):
    assert parse_size_flag(value) == expected


def test_unsupported_ratio_snaps():
    assert parse_size_flag("21:9") == "16:9"
    assert parse_size_flag("32:18") == "16:9"
    assert parse_size_flag("2:2") == "1:1"


@pytest.mark.parametrize(
    "value,message",
    [
        ("abc", "expected W:H or WIDTHxHEIGHT"),
        ("axb", "expected WIDTHxHEIGHT"),
        ("1024x1024x5", "expected WIDTHxHEIGHT"),
        ("0x100", "dimensions must be positive"),
        ("-5x100", "dimensions must be positive"),
        ("16:0", "ratio components must be positive"),
        ("-4:3", "ratio components must be positive"),
        ("16:9:1", "expected W:H"),
        ("1.5:1", "expected W:H"),
    ],
)
def test_invalid_inputs(value, message):
    with pytest.raises(SizeError, match=message):
        parse_size_flag(value)


def test_size_error_is_value_error():
    with pytest.raises(ValueError):
        parse_size_flag("nonsense")


@pytest.mark.parametrize("ratio", [0.01, 0.5, 0.9, 1.0, 1.2, 1.5, 2.0, 10.0])
def test_snap_always_returns_supported(ratio):
    assert snap_to_supported_ratio(ratio) in SUPPORTED_ASPECT_RATIOS


def test_snap_exact_values():
    assert snap_to_supported_ratio(1.0) == "1:1"
    assert snap_to_supported_ratio(4 / 3) == "4:3"
    assert snap_to_supported_ratio(16 / 9) == "16:9"
    assert snap_to_supported_ratio(9 / 16) == "9:16"


def test_snap_extremes():
    assert snap_to_supported_ratio(100.0) == "16:9"
    assert snap_to_supported_ratio(0.01) == "9:16"


def test_every_parsed_ratio_has_presets():
    for ratio in SUPPORTED_ASPECT_RATIOS:
        parsed = parse_size_flag(ratio)
        assert parsed in IMAGE_SIZE_PRESETS
        assert parsed in PIXEL_SIZES
    assert IMAGE_SIZE_PRESETS[parse_size_flag("1920x1080")] == "landscape_16_9"
    assert PIXEL_SIZES[parse_size_flag("1600x1200")] == "1536x1024"


@pytest.mark.parametrize(
    "fmt,suffix,size,expected",
    [
        ("PNG", ".png", (1600, 900), "16:9"),
        ("JPEG", ".jpg", (900, 1600), "9:16"),
        ("GIF", ".gif", (100, 100), "1:1"),
        ("PNG", ".png", (800, 600), "4:3"),
    ],
)
def test_infer_from_image(tmp_path, fmt, suffix, size, expected):
    path = tmp_path / f"ref{suffix}"
    Image.new("RGB", size).save(path, format=fmt)
    assert infer_aspect_ratio_from_ref(path) == expected


def test_infer_from_non_image(tmp_path):
    path = tmp_path / "notes.png"
    path.write_text("not an image")
    assert infer_aspect_ratio_from_ref(path) == ""


def test_infer_from_missing_file(tmp_path):
    assert infer_aspect_ratio_from_ref(tmp_path / "missing.png") == ""


@pytest.mark.parametrize(
    "path,expected",
    [
        ("out.png", "png"),
        ("OUT.PNG", "png"),
        ("a.jpg", "jpeg"),
        ("a.JPEG", "jpeg"),
        ("a.webp", "webp"),
        ("a.gif", ""),
        ("noext", ""),
        ("trailing.", ""),
        ("dir.v2/out", ""),
    ],
)
def test_output_format_from_path(path, expected):
    assert output_format_from_path(path) == expected