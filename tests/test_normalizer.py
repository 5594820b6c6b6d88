"""
Tests for answer normalization and hashed comparison.
"""

import hashlib

from ctfscore.normalizer import answer_matches, hash_answer, normalize_answer


def test_normalize_trims_and_folds_by_default():
    assert normalize_answer("  Answer \t\n") == "answer"


def test_normalize_keeps_case_when_sensitive():
    assert normalize_answer(" Answer ", case_sensitive=True) == "Answer"


def test_hash_is_sha256_of_normalized_form():
    expected = hashlib.sha256(b"answer").hexdigest()
    assert hash_answer(" ANSWER ") == expected
    assert hash_answer("answer", case_sensitive=True) == expected


def test_case_insensitive_match():
    stored = hash_answer("answer")
    assert answer_matches(" Answer ", stored)


def test_case_sensitive_match_requires_exact_case():
    stored = hash_answer("Answer", case_sensitive=True)
    assert answer_matches(" Answer ", stored, case_sensitive=True)
    assert not answer_matches(" answer ", stored, case_sensitive=True)


def test_no_fuzzy_matching():
    stored = hash_answer("10.0.0.5")
    assert not answer_matches("10.0.0.50", stored)
    assert not answer_matches("10.0.0 .5", stored)
    assert not answer_matches("", stored)


def test_inner_whitespace_is_significant():
    stored = hash_answer("pass the hash")
    assert not answer_matches("pass  the hash", stored)
