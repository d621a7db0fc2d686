"""Tests for the credential vault."""

import base64

import pytest

from app.domain.vault.credential_vault import (
    MASK_PREFIX,
    CredentialVault,
    DecryptionError,
    VaultConfigError,
    derive_key,
    init_vault,
    is_masked,
    mask_plaintext,
)


class TestEncryptDecrypt:
    def test_round_trip(self, vault: CredentialVault):
        """Should decrypt what it encrypted."""
        token = vault.encrypt("live_abcd-1234-efgh")

        assert vault.decrypt(token) == "live_abcd-1234-efgh"

    def test_token_shape(self, vault: CredentialVault):
        """Token should be three base64 parts: 12-byte nonce, 16-byte tag, ciphertext."""
        token = vault.encrypt("secret")

        nonce, tag, ciphertext = (base64.b64decode(p) for p in token.split(":"))
        assert len(nonce) == 12
        assert len(tag) == 16
        assert len(ciphertext) == len("secret")

    def test_nonce_is_random(self, vault: CredentialVault):
        """Encrypting the same value twice should yield different tokens."""
        assert vault.encrypt("same") != vault.encrypt("same")

    def test_tampered_ciphertext_rejected(self, vault: CredentialVault):
        """A modified ciphertext should fail the integrity check."""
        nonce, tag, ciphertext = vault.encrypt("stream-key-9876").split(":")
        raw = bytearray(base64.b64decode(ciphertext))
        raw[0] ^= 0x01
        tampered = ":".join([nonce, tag, base64.b64encode(bytes(raw)).decode()])

        with pytest.raises(DecryptionError):
            vault.decrypt(tampered)

    def test_wrong_key_rejected(self, vault: CredentialVault):
        """A token sealed with another key should not decrypt."""
        token = CredentialVault("another-key").encrypt("value")

        with pytest.raises(DecryptionError):
            vault.decrypt(token)

    @pytest.mark.parametrize("token", ["", "abc", "a:b", "a:b:c:d", "!!!:???:***"])
    def test_malformed_token_rejected(self, vault: CredentialVault, token: str):
        """Wrong shape or encoding should raise DecryptionError."""
        with pytest.raises(DecryptionError):
            vault.decrypt(token)

    def test_missing_key_is_config_error(self):
        """Building a vault without key material should fail."""
        with pytest.raises(VaultConfigError):
            CredentialVault("")

    def test_hex_key_used_raw(self):
        """A 64-char hex secret should be used as the raw 32-byte key."""
        hex_key = "ab" * 32

        assert derive_key(hex_key) == bytes.fromhex(hex_key)
        assert len(derive_key("short passphrase")) == 32


class TestMask:
    def test_mask_shows_last_four_plaintext_chars(self, vault: CredentialVault):
        """Masking should decrypt and show only the last four characters."""
        token = vault.encrypt("abcd-efgh-ijkl-9876")

        assert vault.mask(token) == "****9876"

    def test_mask_short_plaintext(self, vault: CredentialVault):
        """Plaintext of four characters or fewer should be fully hidden."""
        assert vault.mask(vault.encrypt("1234")) == MASK_PREFIX

    def test_mask_empty(self, vault: CredentialVault):
        """Empty values should mask to None."""
        assert vault.mask(None) is None
        assert vault.mask("") is None

    def test_mask_undecryptable_falls_back_to_raw(self, vault: CredentialVault):
        """A token that cannot be decrypted should be masked as-is, never raise."""
        assert vault.mask("legacy-plaintext-key") == "****-key"

    def test_masked_value_is_recognised(self, vault: CredentialVault):
        """The masked form should be detected so updates can skip it."""
        masked = vault.mask(vault.encrypt("my-stream-key"))

        assert masked is not None
        assert is_masked(masked)
        assert not is_masked("my-stream-key")
        assert mask_plaintext("xy") == "****"


class TestIsEncrypted:
    def test_structural_check(self, vault: CredentialVault):
        assert CredentialVault.is_encrypted(vault.encrypt("value"))
        assert not CredentialVault.is_encrypted("plain")
        assert not CredentialVault.is_encrypted("a::c")
        assert not CredentialVault.is_encrypted(None)


def test_init_vault_requires_key():
    """init_vault should build a working vault and refuse to start without a key."""
    vault = init_vault("process-key")

    assert vault.decrypt(vault.encrypt("abc")) == "abc"
    with pytest.raises(VaultConfigError):
        init_vault(None)
