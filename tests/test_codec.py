import pytest

from otm import codec


@pytest.mark.parametrize(
    "plaintext",
    [b"", b"hello", "zażółć gęślą jaźń".encode("utf-8"), bytes(range(256))],
)
def test_decode_reverses_encode(plaintext):
    key = codec.generate_key(len(plaintext))
    assert codec.decode(codec.encode(plaintext, key), key) == plaintext


def test_encode_changes_bytes_with_random_key():
    plaintext = b"attack at dawn" * 4
    key = codec.generate_key(len(plaintext))
    assert codec.encode(plaintext, key) != plaintext


def test_generate_key_length():
    assert len(codec.generate_key(0)) == 0
    assert len(codec.generate_key(37)) == 37


def test_short_key_wraps_cyclically():
    assert codec.encode(b"\x00\x00\x00\x00\x00", b"\x01\x02") == b"\x01\x02\x01\x02\x01"


def test_longer_key_uses_prefix():
    assert codec.encode(b"\x00\x00", b"\x05\x06\x07") == b"\x05\x06"


def test_empty_key_rejected_for_data():
    with pytest.raises(ValueError):
        codec.encode(b"x", b"")


def test_empty_data_accepts_empty_key():
    assert codec.encode(b"", b"") == b""


def test_text_helpers():
    ciphertext, key = codec.encode_text("héllo")
    assert len(key) == len("héllo".encode("utf-8"))
    assert codec.decode_text(ciphertext, key) == "héllo"


def test_text_helpers_empty():
    ciphertext, key = codec.encode_text("")
    assert ciphertext == b"" and key == b""
    assert codec.decode_text(ciphertext, key) == ""
