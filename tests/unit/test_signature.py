"""Unit tests for the provider signature (MD5 over canonical key=value string)."""

import hashlib

import pytest

from vippay_api.billing.signature import canonical_string, compute_signature, verify_signature

SECRET = "test-yungou-signing-key"


def _md5_upper(s: str) -> str:
    return hashlib.md5(s.encode("utf-8")).hexdigest().upper()


class TestCanonicalString:
    def test_sorted_and_secret_appended(self):
        params = {"total_fee": "6900", "out_trade_no": "VIP_u1_1", "transaction_id": "T1"}
        assert canonical_string(params, SECRET) == (
            f"out_trade_no=VIP_u1_1&total_fee=6900&transaction_id=T1&key={SECRET}"
        )

    def test_empty_none_and_sign_are_dropped(self):
        params = {"a": "1", "b": "", "c": None, "sign": "ABC", "d": "4"}
        assert canonical_string(params, SECRET) == f"a=1&d=4&key={SECRET}"

    def test_bytewise_ordering(self):
        # Uppercase sorts before lowercase in byte order
        params = {"b": "2", "B": "1", "a": "3"}
        assert canonical_string(params, SECRET) == f"B=1&a=3&b=2&key={SECRET}"

    def test_integer_values_formatted_as_decimal(self):
        assert canonical_string({"total_fee": 6900}, SECRET) == f"total_fee=6900&key={SECRET}"


class TestComputeSignature:
    def test_matches_md5_uppercase(self):
        params = {"out_trade_no": "VIP_u1_1", "transaction_id": "T1", "total_fee": "6900"}
        expected = _md5_upper(f"out_trade_no=VIP_u1_1&total_fee=6900&transaction_id=T1&key={SECRET}")
        assert compute_signature(params, SECRET) == expected

    def test_deterministic(self):
        params = {"out_trade_no": "VIP_u1_1", "total_fee": "6900"}
        assert compute_signature(params, SECRET) == compute_signature(params, SECRET)

    def test_order_independent(self):
        a = {"out_trade_no": "VIP_u1_1", "transaction_id": "T1", "total_fee": "6900"}
        b = {"total_fee": "6900", "transaction_id": "T1", "out_trade_no": "VIP_u1_1"}
        assert compute_signature(a, SECRET) == compute_signature(b, SECRET)

    def test_existing_sign_field_ignored(self):
        params = {"out_trade_no": "VIP_u1_1", "total_fee": "6900"}
        assert compute_signature({**params, "sign": "WHATEVER"}, SECRET) == compute_signature(params, SECRET)

    def test_different_secret_different_signature(self):
        params = {"out_trade_no": "VIP_u1_1", "total_fee": "6900"}
        assert compute_signature(params, SECRET) != compute_signature(params, "other-secret")

    def test_output_is_uppercase_hex(self):
        sig = compute_signature({"a": "1"}, SECRET)
        assert len(sig) == 32
        assert sig == sig.upper()
        int(sig, 16)


class TestVerifySignature:
    PARAMS = {"out_trade_no": "VIP_u1_1700000000000", "transaction_id": "T1", "total_fee": "6900"}

    def test_valid_signature(self):
        sig = compute_signature(self.PARAMS, SECRET)
        assert verify_signature(self.PARAMS, sig, SECRET) is True

    @pytest.mark.parametrize("field", ["out_trade_no", "transaction_id", "total_fee"])
    def test_single_byte_tamper_rejected(self, field):
        sig = compute_signature(self.PARAMS, SECRET)
        tampered = dict(self.PARAMS)
        value = tampered[field]
        tampered[field] = value[:-1] + chr(ord(value[-1]) ^ 1)
        assert verify_signature(tampered, sig, SECRET) is False

    @pytest.mark.parametrize("position", range(32))
    def test_tampered_signature_rejected(self, position):
        sig = compute_signature(self.PARAMS, SECRET)
        replacement = "0" if sig[position] != "0" else "1"
        bad = sig[:position] + replacement + sig[position + 1 :]
        assert verify_signature(self.PARAMS, bad, SECRET) is False

    def test_lowercase_signature_rejected(self):
        sig = compute_signature(self.PARAMS, SECRET)
        assert verify_signature(self.PARAMS, sig.lower(), SECRET) is False

    @pytest.mark.parametrize("provided", [None, "", 12345])
    def test_missing_or_non_string_signature(self, provided):
        assert verify_signature(self.PARAMS, provided, SECRET) is False
