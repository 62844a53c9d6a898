"""Tests for the Pillow rasterizer and the timed gateway."""

from __future__ import annotations

import math
from io import BytesIO

import pytest
import pytest_mock
from PIL import Image

from imgnorm.imgproc.errors import RasterizeError, RasterizerTimeoutError
from imgnorm.imgproc.rasterizer import PillowRasterizer, RasterizerGateway
from imgnorm.imgproc.transform import AffineTransform, compute
from imgnorm.imgproc.types import Dimensions, ImageFormat, OrientationCode

from conftest import make_jpeg

RED = (255, 0, 0)
WHITE = (255, 255, 255)


def _patterned(width: int, height: int) -> Image.Image:
    image = Image.new("RGB", (width, height))
    image.putdata([(x * 40 % 256, y * 40 % 256, (x + y) % 256) for y in range(height) for x in range(width)])
    return image


def test_rotate_90_cw_puts_marker_top_right() -> None:
    source = Image.new("RGB", (800, 600), WHITE)
    source.putpixel((0, 0), RED)
    transform, dims = compute(OrientationCode.ROTATE_90_CW, Dimensions(800, 600))

    result = PillowRasterizer().draw(source, transform)

    assert result.size == (600, 800)
    assert result.getpixel((599, 0)) == RED
    assert result.getpixel((0, 0)) == WHITE


@pytest.mark.parametrize("code", list(OrientationCode))
def test_draw_matches_affine_mapping_per_pixel(code: OrientationCode) -> None:
    source = _patterned(5, 3)
    transform, dims = compute(code, Dimensions(5, 3))

    result = PillowRasterizer().draw(source, transform)

    assert result.size == (dims.width, dims.height)
    for y in range(source.height):
        for x in range(source.width):
            dest_x, dest_y = transform.apply(x + 0.5, y + 0.5)
            assert result.getpixel((math.floor(dest_x), math.floor(dest_y))) == source.getpixel((x, y))


def test_draw_scaling_resizes() -> None:
    source = _patterned(100, 60)

    result = PillowRasterizer().draw(source, AffineTransform.scaling(Dimensions(100, 60), 0.5))

    assert result.size == (50, 30)


def test_draw_general_affine_uses_canvas_size() -> None:
    source = _patterned(20, 20)
    shear = AffineTransform(1, 0, 0.5, 1, 0, 0, Dimensions(30, 20))

    result = PillowRasterizer().draw(source, shear)

    assert result.size == (30, 20)


def test_decode_reads_dimensions_without_applying_exif() -> None:
    data = make_jpeg(40, 30, orientation=6)

    pixels = PillowRasterizer().decode(data)

    assert pixels.size == (40, 30)


def test_decode_rejects_non_images() -> None:
    with pytest.raises(ValueError):
        PillowRasterizer().decode(b"definitely not an image")


def test_encode_at_full_quality_keeps_dimensions() -> None:
    rasterizer = PillowRasterizer()
    source = _patterned(64, 48)
    transform, dims = compute(OrientationCode.ROTATE_90_CCW, Dimensions(64, 48))

    encoded = rasterizer.encode(rasterizer.draw(source, transform), ImageFormat.JPEG, 1.0)

    with Image.open(BytesIO(encoded)) as decoded:
        assert decoded.format == "JPEG"
        assert decoded.size == (dims.width, dims.height)


def test_encode_jpeg_flattens_alpha_onto_white() -> None:
    source = Image.new("RGBA", (16, 16), (0, 0, 0, 0))

    encoded = PillowRasterizer().encode(source, ImageFormat.JPEG, 0.9)

    with Image.open(BytesIO(encoded)) as decoded:
        assert decoded.mode == "RGB"
        assert all(channel > 245 for channel in decoded.getpixel((8, 8)))


def test_encode_png_keeps_alpha() -> None:
    source = Image.new("RGBA", (8, 8), (10, 20, 30, 40))

    encoded = PillowRasterizer().encode(source, ImageFormat.PNG, 0.5)

    with Image.open(BytesIO(encoded)) as decoded:
        assert decoded.format == "PNG"
        assert decoded.getpixel((0, 0)) == (10, 20, 30, 40)


def test_lower_quality_produces_smaller_jpeg() -> None:
    rasterizer = PillowRasterizer()
    source = _patterned(128, 128)

    high = rasterizer.encode(source, ImageFormat.JPEG, 0.95)
    low = rasterizer.encode(source, ImageFormat.JPEG, 0.2)

    assert len(low) < len(high)


@pytest.mark.asyncio
async def test_gateway_decode_returns_handle_with_source() -> None:
    data = make_jpeg(30, 20)
    gateway = RasterizerGateway(PillowRasterizer(), timeout=5)

    handle = await gateway.decode(data)

    assert handle.dimensions == Dimensions(30, 20)
    assert handle.source is data


@pytest.mark.asyncio
async def test_gateway_wraps_adapter_errors(fake_rasterizer_factory) -> None:
    rasterizer = fake_rasterizer_factory(size_for=lambda q, d: 10, fail_stage="decode")
    gateway = RasterizerGateway(rasterizer, timeout=5)

    with pytest.raises(RasterizeError) as exc_info:
        await gateway.decode(b"abc")

    assert not isinstance(exc_info.value, RasterizerTimeoutError)
    assert exc_info.value.stage == "decode"
    assert isinstance(exc_info.value.__cause__, OSError)


@pytest.mark.asyncio
async def test_gateway_reports_timeouts_separately(fake_rasterizer_factory) -> None:
    rasterizer = fake_rasterizer_factory(size_for=lambda q, d: 10, delay=0.5)
    gateway = RasterizerGateway(rasterizer, timeout=0.05)

    with pytest.raises(RasterizerTimeoutError) as exc_info:
        await gateway.decode(b"abc")

    assert exc_info.value.stage == "decode"
    assert exc_info.value.timeout == 0.05
    assert not isinstance(exc_info.value, RasterizeError)


def test_jpeg_encode_closes_flattening_intermediates(mocker: pytest_mock.MockerFixture) -> None:
    source = Image.new("RGBA", (16, 16), (200, 10, 10, 128))
    close_spy = mocker.spy(Image.Image, "close")

    PillowRasterizer().encode(source, ImageFormat.JPEG, 0.8)

    closed = [call.args[0] for call in close_spy.call_args_list]
    assert len(closed) >= 3
    assert all(image is not source for image in closed)
    assert source.getpixel((0, 0)) == (200, 10, 10, 128)


def test_jpeg_encode_of_rgb_closes_nothing(mocker: pytest_mock.MockerFixture) -> None:
    source = _patterned(8, 8)
    close_spy = mocker.spy(Image.Image, "close")

    PillowRasterizer().encode(source, ImageFormat.JPEG, 0.8)

    assert close_spy.call_count == 0
