#!/usr/bin/env python3
"""
Unit tests for scope key derivation
"""

import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from repocache.key_generator import (
    DEFAULT_SCOPE, ScopeKeyGenerator, keys_match, normalize_params,
)


class TestScopeKey:
    """Test: scope keys partition the cache by collection key values."""

    def test_unparameterized_uses_default_scope(self):
        gen = ScopeKeyGenerator()
        assert gen.scope_key({"anything": 1}) == DEFAULT_SCOPE
        assert gen.scope_key(None) == DEFAULT_SCOPE

    def test_single_key(self):
        gen = ScopeKeyGenerator(["company_id"])
        assert gen.scope_key({"company_id": 100}) == "100"

    def test_missing_first_key_is_undefined(self):
        gen = ScopeKeyGenerator(["company_id"])
        assert gen.scope_key({"id": 5}) is None
        assert gen.scope_key(None) is None

    def test_same_value_different_type_shares_scope(self):
        gen = ScopeKeyGenerator(["company_id"])
        assert gen.scope_key({"company_id": 100}) == gen.scope_key({"company_id": "100"})

    def test_multiple_keys_joined_with_separator(self):
        gen = ScopeKeyGenerator(["a", "b", "c"])
        assert gen.scope_key({"a": 1, "b": "x", "c": 3}) == "1~~x~~3"

    def test_missing_trailing_keys_leave_empty_segments(self):
        gen = ScopeKeyGenerator(["a", "b", "c", "d"])
        assert gen.scope_key({"a": 1, "c": 3}) == "1~~~~3~~"

    def test_decorator_applies_to_first_key_only(self):
        gen = ScopeKeyGenerator(["a", "b"], decorator=lambda v: v.upper())
        assert gen.scope_key({"a": "acme", "b": "east"}) == "ACME~~east"

    def test_empty_key_falls_back_to_default(self):
        gen = ScopeKeyGenerator(["a"])
        assert gen.scope_key({"a": ""}) == DEFAULT_SCOPE

    def test_too_many_keys_rejected(self):
        with pytest.raises(ValueError):
            ScopeKeyGenerator(["a", "b", "c", "d", "e"])

    def test_scope_params_picks_collection_keys(self):
        gen = ScopeKeyGenerator(["a", "b"])
        assert gen.scope_params({"a": 1, "b": 2, "id": 9}) == {"a": 1, "b": 2}


class TestHelpers:
    def test_keys_match_coerces_to_string(self):
        assert keys_match(5, "5")
        assert keys_match("abc", "abc")
        assert not keys_match(5, 6)

    def test_missing_keys_never_match(self):
        assert not keys_match(None, None)
        assert not keys_match("", "")
        assert keys_match(0, 0)

    def test_normalize_scalar(self):
        assert normalize_params(5, "id") == {"id": 5}
        assert normalize_params("abc", "id") == {"id": "abc"}

    def test_normalize_mapping_is_copied(self):
        params = {"id": 5}
        normalized = normalize_params(params, "id")
        assert normalized == params
        assert normalized is not params

    def test_normalize_none(self):
        assert normalize_params(None, "id") == {}

    def test_normalize_rejects_other_types(self):
        with pytest.raises(TypeError):
            normalize_params([1, 2], "id")
