"""
Answer normalization and hashing.

Canonical answers are stored only as the SHA-256 digest of their normalized
form. Submissions are normalized the same way, hashed, and the digests are
compared in constant time.
"""

import hashlib
import hmac


def normalize_answer(
    answer: str,
    case_sensitive: bool = False,
) -> str:
    """
    Canonicalize an answer for comparison.

    @param answer: Raw answer text
    @param case_sensitive: Keep letter case when True
    @return: Trimmed (and lowercased unless case sensitive) answer
    """
    normalized = answer.strip()
    if not case_sensitive:
        normalized = normalized.lower()
    return normalized


def hash_answer(
    answer: str,
    case_sensitive: bool = False,
) -> str:
    """
    Hash the normalized form of an answer.

    @param answer: Raw answer text
    @param case_sensitive: Keep letter case when True
    @return: Hex SHA-256 digest of the normalized answer
    """
    normalized = normalize_answer(answer, case_sensitive)
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


def answer_matches(
    submitted: str,
    answer_hash: str,
    case_sensitive: bool = False,
) -> bool:
    """
    Check a submission against a stored answer digest.

    @param submitted: Answer text submitted by a team
    @param answer_hash: Stored digest produced by hash_answer
    @param case_sensitive: Case handling the digest was produced with
    @return: True on exact match after normalization
    """
    return hmac.compare_digest(hash_answer(submitted, case_sensitive), answer_hash)
