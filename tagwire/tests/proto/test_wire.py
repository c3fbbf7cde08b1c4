"""Tests for wire primitives"""

from pytest import raises

from tagwire.proto.wire import (
    FieldOutOfRange,
    MalformedLength,
    MalformedVarint,
    Reader,
    TruncatedInput,
    UnknownWireType,
    ValueOutOfRange,
    WireType,
    Writer,
    decode_tag,
    decode_varint,
    decode_zigzag,
    encode_tag,
    encode_varint,
    encode_zigzag,
)


def describe_varint():
    def test_small_values_take_one_byte(expect):
        expect(encode_varint(0)) == b"\x00"
        expect(encode_varint(1)) == b"\x01"
        expect(encode_varint(127)) == b"\x7f"

    def test_multi_byte(expect):
        expect(encode_varint(300)) == bytes.fromhex("ac02")
        expect(decode_varint(bytes.fromhex("ac02"))) == (300, 2)

    def test_negative_values_sign_extend_to_ten_bytes(expect):
        encoded = encode_varint(-1)
        expect(encoded) == bytes.fromhex("ffffffffffffffffff01")
        expect(decode_varint(encoded)) == ((1 << 64) - 1, 10)

    def test_decode_at_offset(expect):
        expect(decode_varint(b"\xff\xac\x02", 1)) == (300, 2)

    def test_truncated(expect):
        with raises(TruncatedInput):
            decode_varint(b"\x80")
        with raises(TruncatedInput):
            decode_varint(b"")

    def test_respects_end(expect):
        with raises(TruncatedInput):
            decode_varint(bytes.fromhex("ac02"), 0, 1)

    def test_too_long(expect):
        with raises(MalformedVarint):
            decode_varint(b"\x80" * 10 + b"\x01")


def describe_zigzag():
    def test_small_magnitudes_first(expect):
        expect([encode_zigzag(v) for v in (0, -1, 1, -2, 2)]) == [0, 1, 2, 3, 4]

    def test_32_bit_extremes(expect):
        expect(encode_zigzag(2147483647, 32)) == 0xFFFFFFFE
        expect(encode_zigzag(-2147483648, 32)) == 0xFFFFFFFF

    def test_decode(expect):
        for value in (0, -1, 1, -64, 63, -(1 << 63), (1 << 63) - 1):
            expect(decode_zigzag(encode_zigzag(value))) == value


def describe_tags():
    def test_encode(expect):
        expect(encode_tag(1, WireType.VARINT)) == b"\x08"
        expect(encode_tag(5, WireType.VARINT)) == b"\x28"
        expect(encode_tag(2, WireType.LEN)) == b"\x12"
        expect(encode_tag(16, WireType.VARINT)) == b"\x80\x01"

    def test_decode(expect):
        expect(decode_tag(b"\x51")) == (10, WireType.I64, 1)
        expect(decode_tag(b"\x95\x01")) == (18, WireType.I32, 2)

    def test_field_number_range(expect):
        expect(encode_tag((1 << 29) - 1, WireType.VARINT)) == bytes.fromhex("f8ffffff0f")
        with raises(FieldOutOfRange):
            encode_tag(0, WireType.VARINT)
        with raises(FieldOutOfRange):
            encode_tag(1 << 29, WireType.VARINT)


def describe_writer():
    def test_fixed_widths_are_little_endian(expect):
        w = Writer()
        w.write_fixed32(1)
        w.write_sfixed64(-2)
        expect(w.getvalue()) == bytes.fromhex("01000000" + "feffffffffffffff")
        expect(len(w)) == 12

    def test_bytes_are_length_prefixed(expect):
        w = Writer()
        w.write_bytes(b"abc")
        expect(w.getvalue()) == b"\x03abc"

    def test_fixed_out_of_range(expect):
        with raises(ValueOutOfRange):
            Writer().write_fixed32(1 << 32)
        with raises(ValueOutOfRange):
            Writer().write_fixed64(-1)


def describe_reader():
    def test_reads_in_sequence(expect):
        r = Reader(bytes.fromhex("ac02" + "0300000000000000" + "02ffff"))
        expect(r.read_varint()) == 300
        expect(r.read_fixed64()) == 3
        expect(r.read_bytes()) == b"\xff\xff"
        expect(r.at_end()) == True

    def test_truncated_fixed(expect):
        with raises(TruncatedInput):
            Reader(b"\x01\x02\x03").read_fixed32()

    def test_length_past_end(expect):
        with raises(MalformedLength):
            Reader(b"\x05ab").read_bytes()

    def test_pushed_limit_bounds_reads(expect):
        r = Reader(b"\x01\x02\x03\x04\x05")
        old = r.push_limit(2)
        r.read_raw(2)
        with raises(MalformedLength):
            r.read_raw(1)
        r.pop_limit(old)
        expect(r.read_raw(3)) == b"\x03\x04\x05"

    def test_push_limit_past_end(expect):
        r = Reader(b"\x01\x02")
        with raises(MalformedLength):
            r.push_limit(3)

    def test_pop_limit_requires_payload_consumed(expect):
        r = Reader(b"\x01\x02")
        old = r.push_limit(2)
        r.read_varint()
        with raises(MalformedLength):
            r.pop_limit(old)

    def test_varint_crossing_limit(expect):
        r = Reader(b"\x80\x01")
        r.push_limit(1)
        with raises(MalformedLength):
            r.read_varint()

    def test_skip(expect):
        r = Reader(bytes.fromhex("01" + "0102030405060708" + "02abcd" + "01020304"))
        r.skip(WireType.VARINT)
        r.skip(WireType.I64)
        r.skip(WireType.LEN)
        r.skip(WireType.I32)
        expect(r.at_end()) == True

    def test_skip_group_wire_types(expect):
        with raises(UnknownWireType):
            Reader(b"\x00").skip(3)
        with raises(UnknownWireType):
            Reader(b"\x00").skip(4)
