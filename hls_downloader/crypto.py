"""AES-128-CBC segment decryption and transport-stream normalization."""

from typing import Optional

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .errors import CryptoError
from .models import AES_BLOCK_SIZE, TS_SYNC_BYTE, EncryptionKey


def parse_iv(value: Optional[str]) -> Optional[bytes]:
    """Convert an EXT-X-KEY IV attribute (``0x`` hex) to 16 bytes."""
    if not value:
        return None
    hexstr = value.strip()
    if hexstr[:2].lower() == "0x":
        hexstr = hexstr[2:]
    if len(hexstr) % 2:
        hexstr = "0" + hexstr
    try:
        raw = bytes.fromhex(hexstr)
    except ValueError as exc:
        raise ValueError(f"invalid IV: {value}") from exc
    if len(raw) > AES_BLOCK_SIZE:
        raise ValueError(f"IV longer than {AES_BLOCK_SIZE} bytes: {value}")
    return raw.rjust(AES_BLOCK_SIZE, b"\x00")


def effective_iv(raw_key: bytes, iv: Optional[bytes]) -> bytes:
    """The playlist IV, or the key itself when the playlist gave none."""
    return (iv or raw_key)[:AES_BLOCK_SIZE]


def pkcs7_unpad(data: bytes) -> bytes:
    unpadder = padding.PKCS7(AES_BLOCK_SIZE * 8).unpadder()
    try:
        return unpadder.update(data) + unpadder.finalize()
    except ValueError as exc:
        raise CryptoError(f"invalid PKCS#7 padding: {exc}") from exc


def decrypt_aes128_cbc(data: bytes, raw_key: bytes, iv: Optional[bytes] = None) -> bytes:
    """Decrypt *data* and strip its PKCS#7 padding."""
    if len(raw_key) != AES_BLOCK_SIZE:
        raise CryptoError(f"AES-128 key must be {AES_BLOCK_SIZE} bytes, got {len(raw_key)}")
    if not data or len(data) % AES_BLOCK_SIZE:
        raise CryptoError(f"ciphertext length {len(data)} is not a multiple of {AES_BLOCK_SIZE}")

    cipher = Cipher(algorithms.AES(raw_key), modes.CBC(effective_iv(raw_key, iv)))
    decryptor = cipher.decryptor()
    plain = decryptor.update(data) + decryptor.finalize()
    return pkcs7_unpad(plain)


def decrypt_segment(data: bytes, key: EncryptionKey) -> bytes:
    return decrypt_aes128_cbc(data, key.raw_key, key.iv)


def trim_to_sync_byte(data: bytes) -> bytes:
    """Drop anything before the first MPEG-TS sync byte."""
    index = data.find(bytes([TS_SYNC_BYTE]))
    if index < 0:
        raise CryptoError("no MPEG-TS sync byte found in segment")
    return data[index:] if index else data
