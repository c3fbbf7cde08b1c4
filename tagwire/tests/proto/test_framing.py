"""Tests for length-delimited framing"""

from pytest import raises

from tagwire.proto import (
    DecodeError,
    Framer,
    MalformedLength,
    MalformedVarint,
    decode_delimited,
    encode_delimited,
    iter_delimited,
)

from .gc_messages import CMsgGCGiftedItems


def describe_delimited():
    def test_encode(expect):
        msg = CMsgGCGiftedItems(accountid=42)
        expect(encode_delimited(msg)) == bytes.fromhex("02082a")
        expect(msg.encode_delimited()) == bytes.fromhex("02082a")

    def test_empty_record(expect):
        expect(encode_delimited(CMsgGCGiftedItems())) == b"\x00"
        expect(decode_delimited(CMsgGCGiftedItems, b"\x00")) == (CMsgGCGiftedItems(), 1)

    def test_decode_at_offset(expect):
        data = bytes.fromhex("02082a" + "021007")
        first, consumed = CMsgGCGiftedItems.decode_delimited(data)
        second, consumed2 = CMsgGCGiftedItems.decode_delimited(data, consumed)
        expect(first.accountid) == 42
        expect(second.giftdefindex) == 7
        expect(consumed + consumed2) == len(data)

    def test_iterates_a_stream(expect):
        messages = [CMsgGCGiftedItems(accountid=i) for i in range(5)]
        stream = b"".join(m.encode_delimited() for m in messages)
        expect(list(iter_delimited(CMsgGCGiftedItems, stream))) == messages

    def test_length_past_end(expect):
        with raises(MalformedLength):
            decode_delimited(CMsgGCGiftedItems, bytes.fromhex("05082a"))

    def test_field_overrunning_the_frame(expect):
        with raises(DecodeError):
            decode_delimited(CMsgGCGiftedItems, bytes.fromhex("01082a"))


def describe_framer():
    def test_encode_frame(expect):
        expect(Framer().encode_frame(b"abc")) == b"\x03abc"

    def test_frames_arrive_in_chunks(expect):
        framer = Framer()
        stream = framer.encode_frame(b"abc") + framer.encode_frame(b"") + framer.encode_frame(b"xy")

        framer.append_buffer(stream[:2])
        expect(framer.decode_frame()) == None
        framer.append_buffer(stream[2:5])
        expect(framer.decode_frame()) == b"abc"
        expect(framer.decode_frame()) == b""
        expect(framer.decode_frame()) == None
        framer.append_buffer(stream[5:])
        expect(list(framer.frames())) == [b"xy"]
        expect(framer.pending) == 0

    def test_length_prefix_split_across_chunks(expect):
        framer = Framer()
        frame = framer.encode_frame(bytes(200))
        framer.append_buffer(frame[:1])
        expect(framer.decode_frame()) == None
        framer.append_buffer(frame[1:])
        expect(framer.decode_frame()) == bytes(200)

    def test_max_length(expect):
        framer = Framer(max_length=4)
        with raises(MalformedLength):
            framer.encode_frame(b"12345")

        framer.append_buffer(b"\x05")
        with raises(MalformedLength):
            framer.decode_frame()
        expect(framer.pending) == 0

    def test_malformed_prefix_clears_buffer(expect):
        framer = Framer()
        framer.append_buffer(b"\xff" * 11)
        with raises(MalformedVarint):
            framer.decode_frame()
        expect(framer.pending) == 0

    def test_clear_buffer(expect):
        framer = Framer()
        framer.append_buffer(b"\x03ab")
        expect(framer.pending) == 3
        framer.clear_buffer()
        expect(framer.decode_frame()) == None
