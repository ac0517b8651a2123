"""
Tests for Podio push signature verification.
"""
import hashlib
import hmac

import pytest

from podio_relay.core.signature import canonical_json, sign, verify

SECRET = "s3cret"
BODY = {"type": "item.update", "item_id": 42, "item_revision_id": 7}


class TestCanonicalJson:
    """Tests for the signed serialization."""

    def test_compact_separators(self):
        assert canonical_json({"a": 1, "b": [1, 2]}) == b'{"a":1,"b":[1,2]}'

    def test_key_order_preserved(self):
        assert canonical_json({"z": 1, "a": 2}) == b'{"z":1,"a":2}'

    def test_unicode_not_escaped(self):
        assert canonical_json({"title": "Café"}) == '{"title":"Café"}'.encode("utf-8")

    @pytest.mark.parametrize(
        "value, expected",
        [
            (1.0, b"1"),
            (-2.0, b"-2"),
            (0.0, b"0"),
            (1.5, b"1.5"),
            (0.1, b"0.1"),
            (123.456, b"123.456"),
            (1e-6, b"0.000001"),
            (1e-7, b"1e-7"),
            (1.5e-10, b"1.5e-10"),
            (1e16, b"10000000000000000"),
            (1e21, b"1e+21"),
            (1.25e22, b"1.25e+22"),
            (float("nan"), b"null"),
        ],
    )
    def test_numbers_formatted_like_javascript(self, value, expected):
        assert canonical_json(value) == expected

    def test_nested_values(self):
        body = {"ok": True, "none": None, "tags": ["a", 2, 3.0], "meta": {"n": -1}}
        assert canonical_json(body) == b'{"ok":true,"none":null,"tags":["a",2,3],"meta":{"n":-1}}'

    def test_escapes_match_json(self):
        assert canonical_json({"q": "say \"hi\"\n"}) == b'{"q":"say \\"hi\\"\\n"}'


class TestVerify:
    """Tests for verify()."""

    def test_matches_known_vector(self):
        expected = hmac.new(
            SECRET.encode(), b'{"type":"item.update","item_id":42,"item_revision_id":7}', hashlib.sha1
        ).hexdigest()

        assert sign(BODY, SECRET) == expected
        assert verify(BODY, expected, SECRET) is True

    def test_whole_number_float_matches_sender_digest(self):
        body = {"item_id": 1, "amount": 1.0}
        expected = hmac.new(SECRET.encode(), b'{"item_id":1,"amount":1}', hashlib.sha1).hexdigest()

        assert verify(body, expected, SECRET) is True

    def test_deterministic(self):
        signature = sign(BODY, SECRET)
        results = {verify(BODY, signature, SECRET) for _ in range(5)}
        assert results == {True}

    def test_changed_body_is_rejected(self):
        signature = sign(BODY, SECRET)
        tampered = dict(BODY, item_id=43)
        assert verify(tampered, signature, SECRET) is False

    def test_wrong_secret_is_rejected(self):
        signature = sign(BODY, SECRET)
        assert verify(BODY, signature, "other-secret") is False

    def test_missing_signature(self):
        assert verify(BODY, None, SECRET) is False
        assert verify(BODY, "", SECRET) is False

    def test_missing_secret(self):
        signature = sign(BODY, SECRET)
        assert verify(BODY, signature, None) is False
        assert verify(BODY, signature, "") is False

    def test_garbage_signature(self):
        assert verify(BODY, "not-a-digest", SECRET) is False
        assert verify(BODY, "ünïcode", SECRET) is False

    def test_non_string_signature(self):
        assert verify(BODY, 12345, SECRET) is False

    def test_unserializable_body(self):
        assert verify({"when": object()}, "abc", SECRET) is False

    def test_unknown_algorithm(self):
        signature = sign(BODY, SECRET)
        assert verify(BODY, signature, SECRET, algorithm="md4") is False

    def test_sha256(self):
        signature = sign(BODY, SECRET, algorithm="sha256")
        assert len(signature) == 64
        assert verify(BODY, signature, SECRET, algorithm="sha256") is True
        assert verify(BODY, signature, SECRET, algorithm="sha1") is False
