import pytest

from camstream.yuv import yuv_to_rgb


def test_neutral_chroma_mid_luma():
    assert yuv_to_rgb(128, 128, 128) == (130, 130, 130)


def test_black_luma_clamps_to_zero():
    assert yuv_to_rgb(0, 128, 128) == (0, 0, 0)


@pytest.mark.parametrize("y", range(0, 256, 5))
def test_neutral_chroma_is_grey(y):
    r, g, b = yuv_to_rgb(y, 128, 128)
    assert r == g == b


def test_luma_is_monotonic_for_neutral_chroma():
    values = [yuv_to_rgb(y, 128, 128)[0] for y in range(256)]
    assert values == sorted(values)


@pytest.mark.parametrize("y", [0, 64, 200, 255])
@pytest.mark.parametrize("u", [0, 100, 255])
@pytest.mark.parametrize("v", [0, 150, 255])
def test_output_in_byte_range(y, u, v):
    assert all(0 <= c <= 255 for c in yuv_to_rgb(y, u, v))


def test_high_v_raises_red_over_low_v():
    assert yuv_to_rgb(128, 128, 255)[0] > yuv_to_rgb(128, 128, 0)[0]


def test_high_u_raises_blue_over_low_u():
    assert yuv_to_rgb(128, 255, 128)[2] > yuv_to_rgb(128, 0, 128)[2]


@pytest.mark.parametrize("args", [(256, 0, 0), (0, -1, 0), (0, 0, 300)])
def test_out_of_range_rejected(args):
    with pytest.raises(ValueError):
        yuv_to_rgb(*args)