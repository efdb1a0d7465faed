"""Verification code generator."""

import secrets

CODE_LENGTH = 6


def generate_code(length: int = CODE_LENGTH) -> str:
    """Return a fixed-width numeric code drawn uniformly from a CSPRNG.

    ``secrets.randbelow(10**6)`` covers 000000–999999; the value is
    zero-padded so every code has exactly *length* digits.
    """
    if length < 1:
        raise ValueError("Code length must be positive")
    return str(secrets.randbelow(10**length)).zfill(length)
