import io
import struct

import pytest

from cal3d.cal3d_parser import BinaryReader, Cal3DError, UnexpectedEndOfData
from tests.builders import f32, i32, string


def reader_for(data):
    return BinaryReader(io.BytesIO(data))


def test_reads_little_endian_primitives():
    reader = reader_for(
        struct.pack("<I", 0xDEADBEEF) + i32(-7) + f32(1.5) + bytes([1, 2, 3, 4])
    )
    assert reader.read_u32() == 0xDEADBEEF
    assert reader.read_i32() == -7
    assert reader.read_f32() == 1.5
    assert reader.read_color() == (1, 2, 3, 4)


def test_reads_vectors_and_quaternions():
    reader = reader_for(f32(1.0, 2.0) + f32(3.0, 4.0, 5.0) + f32(0.0, 0.0, 0.0, 1.0))
    assert reader.read_vec2() == (1.0, 2.0)
    assert reader.read_vec3() == (3.0, 4.0, 5.0)
    assert reader.read_quat() == (0.0, 0.0, 0.0, 1.0)


def test_read_string_widens_each_byte_to_one_character():
    reader = reader_for(i32(3) + bytes([0x41, 0xE9, 0x42]))
    assert reader.read_string() == "AéB"


def test_read_string_does_not_decode_multibyte_text():
    encoded = "é".encode("utf-8")
    reader = reader_for(i32(len(encoded)) + encoded)
    assert reader.read_string() == "Ã©"


@pytest.mark.parametrize("length", [0, -5])
def test_read_string_with_non_positive_length_is_empty(length):
    reader = reader_for(i32(length) + b"rest")
    assert reader.read_string() == ""


def test_read_string_keeps_embedded_nulls():
    assert reader_for(string("tex.tga\0\0")).read_string() == "tex.tga\0\0"


def test_reading_past_the_end_raises():
    reader = reader_for(b"\x01\x02")
    with pytest.raises(UnexpectedEndOfData):
        reader.read_i32()


def test_unexpected_end_of_data_is_an_eof_and_a_loader_error():
    reader = reader_for(i32(10) + b"abc")
    with pytest.raises(EOFError):
        reader.read_string()
    assert issubclass(UnexpectedEndOfData, Cal3DError)
