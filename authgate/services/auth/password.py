"""
Password utilities for authentication

bcrypt is CPU-bound, so hashing and verification are offloaded to an anyio
worker thread.  The same primitive protects user passwords and client
secrets.
"""

import os

import anyio
import bcrypt

BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))


def _hash(secret: str) -> str:
    return bcrypt.hashpw(secret.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def _check(secret: str, hashed: str) -> bool:
    return bcrypt.checkpw(secret.encode("utf-8"), hashed.encode("utf-8"))


async def hash_password(password: str) -> str:
    return await anyio.to_thread.run_sync(_hash, password)


async def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Check *plain_password* against a stored hash without blocking the loop.

    A stored value that is not a bcrypt hash never verifies.
    """
    try:
        return await anyio.to_thread.run_sync(_check, plain_password, hashed_password)
    except ValueError:
        return False
