"""Tests for license key generation and verification."""
import re

import pytest

from license_server.services.key_codec import KeyCodec, KeyCodecConfig, abbreviate

UNSIGNED_FORMAT = re.compile(r"^ECLIPSE-[0-9A-F]{4}-[0-9A-F]{4}-[0-9A-F]{4}$")
SIGNED_FORMAT = re.compile(r"^ECLIPSE-[0-9A-F]{4}-[0-9A-F]{4}-[0-9A-F]{4}-[0-9A-F]{16}$")


@pytest.fixture
def unsigned_codec():
    return KeyCodec(KeyCodecConfig(prefix="ECLIPSE"))


@pytest.fixture
def signed_codec():
    return KeyCodec(KeyCodecConfig(prefix="ECLIPSE", secret="s3cret", signed=True))


def test_generate_unsigned_key_format(unsigned_codec):
    """Stateful keys are prefix plus three hex blocks, no tag."""
    key = unsigned_codec.generate()
    assert UNSIGNED_FORMAT.match(key)
    assert unsigned_codec.matches_format(key)


def test_generate_signed_key_format(signed_codec):
    """Signed keys carry a 16 character tag."""
    key = signed_codec.generate()
    assert SIGNED_FORMAT.match(key)
    assert signed_codec.verify(key)


def test_generated_keys_are_distinct(signed_codec):
    keys = {signed_codec.generate() for _ in range(200)}
    assert len(keys) == 200


def test_block_size_is_configurable():
    codec = KeyCodec(KeyCodecConfig(prefix="LIC", block_bytes=4))
    key = codec.generate()
    assert re.match(r"^LIC-[0-9A-F]{8}-[0-9A-F]{8}-[0-9A-F]{8}$", key)


def test_verify_rejects_tampered_tag(signed_codec):
    key = signed_codec.generate()
    last = key[-1]
    tampered = key[:-1] + ("0" if last != "0" else "1")
    assert signed_codec.verify(tampered) is False


def test_verify_rejects_tampered_identifier(signed_codec):
    prefix, b1, b2, b3, tag = signed_codec.generate().split("-")
    other_block = "0000" if b1 != "0000" else "FFFF"
    forged = "-".join([prefix, other_block, b2, b3, tag])
    assert signed_codec.verify(forged) is False


def test_verify_rejects_key_signed_with_another_secret(signed_codec):
    other = KeyCodec(KeyCodecConfig(prefix="ECLIPSE", secret="other", signed=True))
    assert signed_codec.verify(other.generate()) is False


def test_verify_accepts_lowercase_input(signed_codec):
    key = signed_codec.generate()
    assert signed_codec.verify(key.lower())


@pytest.mark.parametrize("bad", [
    "",
    "ECLIPSE",
    "ECLIPSE-ABCD-ABCD",
    "ECLIPSE-ABCD-ABCD-ABCD",            # missing tag
    "ECLIPSE-ABCD-ABCD-ABCD-ABCD-0123456789ABCDEF",
    "OTHER-ABCD-ABCD-ABCD-0123456789ABCDEF",
    "ECLIPSE-GHIJ-ABCD-ABCD-0123456789ABCDEF",
    "ECLIPSE-ABC-ABCD-ABCD-0123456789ABCDEF",
    "ECLIPSE-ABCD-ABCD-ABCD-0123456789ABCDE",
    "ECLIPSE-ABCD-ABCD-ABCD-0123456789ABCDEZ",
    None,
    12345,
])
def test_malformed_keys_are_rejected_without_raising(signed_codec, bad):
    assert signed_codec.parse(bad) is None
    assert signed_codec.verify(bad) is False


def test_unsigned_codec_never_verifies(unsigned_codec):
    """Stateless verification is meaningless without a secret."""
    assert unsigned_codec.verify(unsigned_codec.generate()) is False


def test_signed_codec_requires_secret():
    with pytest.raises(ValueError):
        KeyCodec(KeyCodecConfig(signed=True, secret=""))


def test_parse_exposes_identifier(signed_codec):
    key = signed_codec.generate()
    parsed = signed_codec.parse(key)
    assert parsed.identifier == "-".join(key.split("-")[1:4])
    assert parsed.tag == key.split("-")[4]


def test_abbreviate_hides_most_of_the_key():
    assert abbreviate("ECLIPSE-ABCD-1234-5678-0123456789ABCDEF") == "ECLIPSE-ABCD-…"
    assert abbreviate("nodashes") == "<malformed>"
