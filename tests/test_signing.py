"""Tests for EIP-3009 transfer authorization signing."""
import pytest

from tipbot.errors import ConfigurationError
from tipbot.signing import (
    MAX_VALID_BEFORE,
    TRANSFER_WITH_AUTHORIZATION_TYPES,
    TransferAuthorization,
    split_signature,
)


@pytest.fixture
def depositor(deriver):
    return deriver.local_account(4)


class TestSignTransferAuthorization:
    def test_recovers_to_signer(self, signer, depositor, deriver):
        auth = signer.sign_transfer_authorization(depositor, deriver.admin_address, 5_000_000, 0, MAX_VALID_BEFORE)

        assert auth.from_address == depositor.address
        assert auth.to_address == deriver.admin_address
        assert signer.recover_authorizer(auth) == depositor.address

    def test_signature_parts(self, signer, depositor, deriver):
        auth = signer.sign_transfer_authorization(depositor, deriver.admin_address, 1, 0, 10)

        assert auth.v in (27, 28)
        assert len(auth.r) == 32
        assert len(auth.s) == 32
        assert len(auth.nonce) == 32

    def test_fresh_nonce_per_request(self, signer, depositor, deriver):
        a = signer.sign_transfer_authorization(depositor, deriver.admin_address, 100, 0, MAX_VALID_BEFORE)
        b = signer.sign_transfer_authorization(depositor, deriver.admin_address, 100, 0, MAX_VALID_BEFORE)

        assert a.nonce != b.nonce
        assert (a.r, a.s) != (b.r, b.s)

    def test_tampered_value_does_not_recover_to_signer(self, signer, depositor, deriver):
        auth = signer.sign_transfer_authorization(depositor, deriver.admin_address, 100, 0, MAX_VALID_BEFORE)
        tampered = TransferAuthorization(
            from_address=auth.from_address,
            to_address=auth.to_address,
            value=auth.value + 1,
            valid_after=auth.valid_after,
            valid_before=auth.valid_before,
            nonce=auth.nonce,
            v=auth.v,
            r=auth.r,
            s=auth.s,
        )
        assert signer.recover_authorizer(tampered) != depositor.address

    def test_recipient_is_checksummed(self, signer, depositor, deriver):
        auth = signer.sign_transfer_authorization(depositor, deriver.admin_address.lower(), 100, 0, 10)
        assert auth.to_address == deriver.admin_address

    def test_invalid_window_rejected(self, signer, depositor, deriver):
        with pytest.raises(ValueError):
            signer.sign_transfer_authorization(depositor, deriver.admin_address, 100, 10, 10)

    def test_zero_value_rejected(self, signer, depositor, deriver):
        with pytest.raises(ValueError):
            signer.sign_transfer_authorization(depositor, deriver.admin_address, 0, 0, 10)

    def test_missing_key_material_is_fatal(self, signer, deriver):
        with pytest.raises(ConfigurationError):
            signer.sign_transfer_authorization(None, deriver.admin_address, 100, 0, 10)


def test_schema_matches_token_contract():
    fields = [f["name"] for f in TRANSFER_WITH_AUTHORIZATION_TYPES["TransferWithAuthorization"]]
    assert fields == ["from", "to", "value", "validAfter", "validBefore", "nonce"]


def test_split_signature():
    sig = bytes(range(32)) + bytes(range(32, 64)) + bytes([1])
    v, r, s = split_signature(sig)
    assert v == 28
    assert r == bytes(range(32))
    assert s == bytes(range(32, 64))


def test_split_signature_wrong_length():
    with pytest.raises(ValueError):
        split_signature(b"\x00" * 64)
