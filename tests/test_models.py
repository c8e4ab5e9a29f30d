"""
Model Tests
===========
"""

import pytest

from minicap_stream.models import EncodedFrame, RawFrame, Rect, TargetSize, validate_rotation


class TestTargetSize:
    """Orientation-adjusted sizes."""

    @pytest.mark.parametrize("rotation,expected", [
        (0, (1080, 1920)),
        (1, (1920, 1080)),
        (2, (1080, 1920)),
        (3, (1920, 1080)),
    ])
    def test_for_rotation(self, rotation, expected):
        size = TargetSize(1080, 1920).for_rotation(rotation)
        assert (size.width, size.height) == expected

    def test_invalid_rotation(self):
        with pytest.raises(ValueError):
            TargetSize(10, 20).for_rotation(4)

    def test_non_positive_rejected(self):
        with pytest.raises(ValueError):
            TargetSize(0, 10)

    def test_str(self):
        assert str(TargetSize(720, 1280)) == "720x1280"


def test_validate_rotation():
    assert validate_rotation(3) == 3
    with pytest.raises(ValueError):
        validate_rotation(-1)


def test_rect_of_size():
    rect = Rect.of_size(720, 1280)
    assert (rect.left, rect.top, rect.width, rect.height) == (0, 0, 720, 1280)


class TestRawFrame:
    """Borrowed buffer bookkeeping."""

    def test_default_row_stride(self):
        raw = RawFrame(buffer=b"\x00" * 48, width=4, height=3)
        assert raw.row_stride == 16
        assert raw.row_padding == 0

    def test_close_releases_once(self):
        released = []
        raw = RawFrame(buffer=b"\x00" * 16, width=2, height=2, release=released.append)

        raw.close()
        raw.close()

        assert released == [raw]
        assert raw.closed is True


def test_encoded_frame_repr_hides_bytes():
    frame = EncodedFrame(data=b"\xff" * 1000, width=10, height=20, quality=80, sequence=4)
    assert "\\xff" not in repr(frame)
    assert len(frame) == 1000
    assert frame.size == TargetSize(10, 20)
