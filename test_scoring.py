"""
Similarity Scoring Tests

Validates:
1. Jaro-Winkler values and bounds
2. The extra-token guard (anti-over-merge)
3. MatchingConfig validation and environment overrides
"""

import pytest
from pydantic import ValidationError

from contact_resolver.config import MatchingConfig
from contact_resolver.scoring import extra_tokens, jaro_winkler, score_names, unexplained_tokens


class TestJaroWinkler:
    """Test the Jaro-Winkler similarity."""

    def test_reference_values(self):
        """Classic reference pairs."""
        assert jaro_winkler("martha", "marhta") == pytest.approx(0.9611, abs=1e-4)
        assert jaro_winkler("dwayne", "duane") == pytest.approx(0.84, abs=1e-3)
        assert jaro_winkler("dixon", "dicksonx") == pytest.approx(0.8133, abs=1e-3)

    def test_identical_and_empty(self):
        assert jaro_winkler("acme", "acme") == 1.0
        assert jaro_winkler("", "acme") == 0.0
        assert jaro_winkler("acme", "") == 0.0

    def test_no_common_characters(self):
        assert jaro_winkler("abc", "xyz") == 0.0

    def test_prefix_bonus_needs_boost_threshold(self):
        """No bonus when Jaro similarity is at or below the boost threshold."""
        plain = jaro_winkler("martha", "marhta", boost_threshold=1.0)
        assert plain == pytest.approx(0.9444, abs=1e-4)

    def test_prefix_weight_zero_is_plain_jaro(self):
        assert jaro_winkler("martha", "marhta", prefix_weight=0.0) == pytest.approx(0.9444, abs=1e-4)

    @pytest.mark.parametrize("a, b", [
        ("acme trading", "acme tradng"),
        ("aaaa", "aaab"),
        ("harbourfront logistics pte ltd", "harbourfront logistcs pte ltd"),
        ("a", "b"),
    ])
    def test_bounded(self, a, b):
        """Scores stay within [0, 1]."""
        assert 0.0 <= jaro_winkler(a, b) <= 1.0


class TestExtraTokenGuard:
    """Test the anti-over-merge guard."""

    def test_extra_candidate_token_rejects(self):
        """"Nobody Business" is a different entity from "Nobody"."""
        result = score_names("nobody pte ltd", "nobody business pte ltd")
        assert result.rejected
        assert result.score == 0.0
        assert result.extra_tokens == ["business"]

    def test_extra_query_token_rejects_when_symmetric(self):
        result = score_names("nobody business pte ltd", "nobody pte ltd")
        assert result.rejected
        assert result.missing_tokens == ["business"]

    def test_asymmetric_guard_accepts_more_specific_query(self):
        config = MatchingConfig(symmetric_token_guard=False)
        result = score_names("nobody business pte ltd", "nobody pte ltd", config)
        assert not result.rejected
        assert result.score == result.jaro_winkler > 0.0

    def test_suffix_difference_is_not_significant(self):
        """Legal suffixes do not identify an entity."""
        result = score_names("harbourfront logistics", "harbourfront logistics pte ltd")
        assert not result.rejected
        assert result.score > 0.9

    def test_token_typo_is_explained(self):
        result = score_names("tan and lim tradng co", "tan and lim trading co")
        assert not result.rejected
        assert result.score >= 0.93

    def test_configurable_insignificant_tokens(self):
        """Declaring "business" insignificant lets the two names match."""
        config = MatchingConfig(insignificant_tokens="pte,ltd,business")
        result = score_names("nobody pte ltd", "nobody business pte ltd", config)
        assert not result.rejected
        assert result.score > 0.0

    def test_extra_tokens(self):
        assert extra_tokens("nobody pte ltd", "nobody business pte ltd") == ["business"]
        assert extra_tokens("nobody business pte ltd", "nobody pte ltd") == []

    def test_unexplained_tokens(self):
        assert unexplained_tokens(["acme", "business"], ["acme"]) == ["business"]
        assert unexplained_tokens(["logistcs"], ["logistics"]) == []

    def test_exact_match_scores_one(self):
        result = score_names("acme trading", "acme trading")
        assert result.score == 1.0


class TestMatchingConfig:
    """Test matching configuration validation."""

    def test_defaults(self):
        config = MatchingConfig()
        assert config.alias_confidence_floor == 0.93
        assert config.fuzzy_accept_threshold == 0.93
        assert config.prefix_weight == 0.1
        assert config.max_prefix_length == 4
        assert "pte" in config.insignificant_tokens
        assert "business" not in config.insignificant_tokens

    def test_threshold_out_of_range(self):
        with pytest.raises(ValidationError):
            MatchingConfig(fuzzy_accept_threshold=1.5)

    def test_prefix_bonus_bounded(self):
        with pytest.raises(ValidationError):
            MatchingConfig(prefix_weight=0.3, max_prefix_length=4)

    def test_frozen(self):
        config = MatchingConfig()
        with pytest.raises(ValidationError):
            config.fuzzy_accept_threshold = 0.5

    def test_from_env(self, monkeypatch):
        """CONTACT_RESOLVER_* variables override defaults."""
        monkeypatch.setenv("CONTACT_RESOLVER_FUZZY_ACCEPT_THRESHOLD", "0.95")
        monkeypatch.setenv("CONTACT_RESOLVER_SYMMETRIC_TOKEN_GUARD", "false")
        monkeypatch.setenv("CONTACT_RESOLVER_INSIGNIFICANT_TOKENS", "PTE, ltd")

        config = MatchingConfig.from_env()

        assert config.fuzzy_accept_threshold == 0.95
        assert config.symmetric_token_guard is False
        assert config.insignificant_tokens == frozenset({"pte", "ltd"})
