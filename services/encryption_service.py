"""Encryption Service.
Authenticated encryption for message bodies and one-way hashing for OTPs.

Ciphertext layout (url-safe base64 of the concatenation):

    salt (16) | nonce (12) | tag (16) | ciphertext

Each call derives its own key from the master key and a fresh salt with scrypt,
then seals the plaintext with AES-256-GCM.
"""
import base64
import binascii
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from flask import current_app

from extensions import bcrypt
from services.errors import DecryptionFailed

SALT_LENGTH = 16
NONCE_LENGTH = 12
TAG_LENGTH = 16
KEY_LENGTH = 32

# scrypt cost parameters
SCRYPT_N = 2 ** 14
SCRYPT_R = 8
SCRYPT_P = 1

OTP_DIGITS = 6


class EncryptionService:

    def __init__(self, master_key):
        """`master_key` is the 64-hex-character ENCRYPTION_KEY setting."""
        self._master_key = self._parse_key(master_key)

    @classmethod
    def from_app(cls, app=None):
        app = app or current_app
        return cls(app.config.get('ENCRYPTION_KEY'))

    @staticmethod
    def _parse_key(master_key):
        if not master_key or len(master_key) != 64:
            return None
        try:
            return bytes.fromhex(master_key)
        except ValueError:
            return None

    @property
    def is_configured(self):
        return self._master_key is not None

    def _derive_key(self, salt):
        kdf = Scrypt(salt=salt, length=KEY_LENGTH, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)
        return kdf.derive(self._master_key)

    def encrypt(self, plaintext):
        """Encrypt a string, returning the serialized blob."""
        if not self.is_configured:
            raise RuntimeError('ENCRYPTION_KEY must be 64 hex characters')

        salt = secrets.token_bytes(SALT_LENGTH)
        nonce = secrets.token_bytes(NONCE_LENGTH)
        sealed = AESGCM(self._derive_key(salt)).encrypt(nonce, plaintext.encode('utf-8'), None)

        # AESGCM appends the tag to the ciphertext
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return base64.urlsafe_b64encode(salt + nonce + tag + ciphertext).decode('ascii')

    def decrypt(self, blob):
        """Decrypt a blob produced by `encrypt`.

        Every failure raises the same DecryptionFailed so callers learn nothing
        about which check rejected the input.
        """
        try:
            if not self.is_configured or not isinstance(blob, str):
                raise DecryptionFailed()

            raw = base64.urlsafe_b64decode(blob.encode('ascii'))
            header = SALT_LENGTH + NONCE_LENGTH + TAG_LENGTH
            if len(raw) < header:
                raise DecryptionFailed()

            salt = raw[:SALT_LENGTH]
            nonce = raw[SALT_LENGTH:SALT_LENGTH + NONCE_LENGTH]
            tag = raw[SALT_LENGTH + NONCE_LENGTH:header]
            ciphertext = raw[header:]

            plaintext = AESGCM(self._derive_key(salt)).decrypt(nonce, ciphertext + tag, None)
            return plaintext.decode('utf-8')
        except DecryptionFailed:
            raise
        except (InvalidTag, binascii.Error, ValueError, UnicodeError, TypeError):
            raise DecryptionFailed() from None

    # Tokens and one-time codes

    @staticmethod
    def generate_token(nbytes=32):
        """URL-safe random token for links."""
        return secrets.token_urlsafe(nbytes)

    @staticmethod
    def generate_otp():
        """Six random decimal digits."""
        return f"{secrets.randbelow(10 ** OTP_DIGITS):0{OTP_DIGITS}d}"

    @staticmethod
    def hash_otp(otp):
        return bcrypt.generate_password_hash(otp).decode('utf-8')

    @staticmethod
    def verify_otp(otp, otp_hash):
        if not otp or not otp_hash:
            return False
        try:
            return bcrypt.check_password_hash(otp_hash, otp)
        except ValueError:
            return False


def get_encryption_service():
    """The service configured for the current application."""
    service = current_app.extensions.get('encryption')
    if service is None:
        service = EncryptionService.from_app()
        current_app.extensions['encryption'] = service
    return service
