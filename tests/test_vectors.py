"""Tests for embedding decoding and vector helpers."""

import math

import numpy as np
import pytest

from ptm.errors import EmbeddingDecodeError
from ptm.rules import Rule, first_match, matching_rule
from ptm.vectors import (
    cosine_similarity,
    decode_all,
    decode_embedding,
    encode_embedding,
    normalize_vector,
    round4,
)


def test_round4_half_up():
    assert round4(0.03125) == 0.0313
    assert round4(0.7) == 0.7
    assert round4(1 / 3) == 0.3333


def test_decode_bytes():
    raw = encode_embedding([1.0, 2.0, 3.0])
    vec = decode_embedding(raw)
    assert vec.tolist() == [1.0, 2.0, 3.0]


def test_decode_rejects_bad_length():
    with pytest.raises(EmbeddingDecodeError):
        decode_embedding(b"\x00\x00\x00")


def test_decode_rejects_empty():
    with pytest.raises(EmbeddingDecodeError):
        decode_embedding(b"")


def test_decode_rejects_dimension_mismatch():
    with pytest.raises(EmbeddingDecodeError):
        decode_embedding([1.0, 2.0], dim=3)


def test_decode_rejects_non_finite():
    with pytest.raises(EmbeddingDecodeError):
        decode_embedding([1.0, float("nan")])


def test_decode_all_requires_one_dimension():
    with pytest.raises(EmbeddingDecodeError):
        decode_all([encode_embedding([1.0, 0.0]), encode_embedding([1.0, 0.0, 0.0])], None)


def test_decode_error_is_value_error():
    assert issubclass(EmbeddingDecodeError, ValueError)


def test_normalize_and_cosine():
    v = normalize_vector(np.array([3.0, 4.0]))
    assert math.isclose(float(np.linalg.norm(v)), 1.0)
    assert normalize_vector(np.zeros(2)).tolist() == [0.0, 0.0]
    assert cosine_similarity(np.array([1.0, 0.0]), np.array([0.0, 0.0])) == 0.0
    assert math.isclose(cosine_similarity(np.array([1.0, 1.0]), np.array([2.0, 2.0])), 1.0)


def test_first_match_order_and_default():
    rules = (
        Rule("big", lambda x: x > 10, "big"),
        Rule("positive", lambda x: x > 0, lambda x: f"positive {x}"),
    )
    assert first_match(rules, 20) == "big"
    assert first_match(rules, 3) == "positive 3"
    assert first_match(rules, -1, default="other") == "other"
    assert matching_rule(rules, 3).name == "positive"
    assert matching_rule(rules, -1) is None
