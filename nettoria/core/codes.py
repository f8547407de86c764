# nettoria/core/codes.py
import secrets


def generate_numeric_code(length: int = 6) -> str:
    """Uniform decimal code of fixed length, zero-padded."""
    if length < 1:
        raise ValueError("length must be positive")
    return str(secrets.randbelow(10 ** length)).zfill(length)


def generate_opaque_token(byte_length: int = 32) -> str:
    """Hex token for one-time links; 32 bytes gives 64 characters."""
    return secrets.token_hex(byte_length)
