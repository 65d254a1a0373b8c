"""
サムプリント変換のプロパティテスト

x5t はフィンガープリントの16進バイト列を base64 にしたものと常に一致する
"""

import base64
import unittest

from hypothesis import given, settings
from hypothesis import strategies as st

from armauth.core.assertion import fingerprint_to_hex, fingerprint_to_x5t, normalize_url, parse_fingerprint


def _openssl_format(raw: bytes) -> str:
    return ":".join(f"{byte:02X}" for byte in raw)


class TestThumbprintProperty(unittest.TestCase):
    """フィンガープリントから x5t への変換"""

    @given(raw=st.binary(min_size=1, max_size=64))
    @settings(max_examples=50, deadline=None)
    def test_x5t_is_base64_of_fingerprint_bytes(self, raw: bytes):
        fingerprint = _openssl_format(raw)
        self.assertEqual(fingerprint_to_x5t(fingerprint), base64.b64encode(raw).decode("ascii"))
        self.assertEqual(base64.b64decode(fingerprint_to_x5t(fingerprint)), raw)

    @given(raw=st.binary(min_size=1, max_size=64))
    @settings(max_examples=50, deadline=None)
    def test_hex_has_no_separators(self, raw: bytes):
        hex_value = fingerprint_to_hex(_openssl_format(raw))
        self.assertNotIn(":", hex_value)
        self.assertEqual(bytes.fromhex(hex_value), raw)

    @given(raw=st.binary(min_size=1, max_size=32))
    @settings(max_examples=50, deadline=None)
    def test_openssl_output_is_parsed(self, raw: bytes):
        fingerprint = _openssl_format(raw)
        self.assertEqual(parse_fingerprint(f"SHA1 Fingerprint={fingerprint}\n"), fingerprint)


class TestNormalizeUrlProperty(unittest.TestCase):
    """URL の正規化"""

    @given(segments=st.lists(st.from_regex(r"[a-z0-9]{1,8}", fullmatch=True), min_size=1, max_size=5),
           slashes=st.integers(min_value=1, max_value=4))
    @settings(max_examples=50, deadline=None)
    def test_repeated_slashes_collapse(self, segments, slashes):
        url = "https://login.example.com/" + ("/" * slashes).join(segments)
        normalized = normalize_url(url)
        self.assertTrue(normalized.startswith("https://"))
        self.assertNotIn("//", normalized[len("https://"):])
        self.assertEqual(normalized, "https://login.example.com/" + "/".join(segments))


if __name__ == "__main__":
    unittest.main()
