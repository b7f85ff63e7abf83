"""
Unlock code generator
Produces short shareable codes and their SHA-256 commitment
"""
import hashlib
import random
import secrets

ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
CODE_LENGTH = 8
GROUP_SIZE = 2
SEPARATOR = "-"


class CodeGenerator:
    """
    Generates codes formatted like AB-3F-9K-Q2

    36^8 combinations. Collisions are unlikely but possible, so callers
    still check the hash against storage.
    """

    def __init__(self, rng: random.Random = None):
        self._rng = rng or secrets.SystemRandom()

    def generate(self) -> str:
        symbols = "".join(self._rng.choice(ALPHABET) for _ in range(CODE_LENGTH))
        return self._format(symbols)

    @staticmethod
    def hash(code: str) -> str:
        """Deterministic one-way digest used as the lookup key"""
        return hashlib.sha256(code.encode("utf-8")).hexdigest()

    @staticmethod
    def normalize(raw: str) -> str:
        """
        Canonical form of user input

        "ab 3f9k-q2" -> "AB-3F-9K-Q2", so a redeemer does not have to
        type the separators exactly as issued.
        """
        symbols = "".join(ch for ch in raw.strip().upper() if ch not in (SEPARATOR, " "))
        return CodeGenerator._format(symbols)

    @staticmethod
    def _format(symbols: str) -> str:
        return SEPARATOR.join(
            symbols[i:i + GROUP_SIZE] for i in range(0, len(symbols), GROUP_SIZE)
        )
