"""One-way hashing for verification codes.

Only a salted PBKDF2 digest of each code is stored.  passlib's
``verify`` compares digests in constant time.
"""

from passlib.context import CryptContext

code_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_code(code: str) -> str:
    return code_context.hash(code)


def verify_code(code: str, code_hash: str) -> bool:
    return code_context.verify(code, code_hash)
