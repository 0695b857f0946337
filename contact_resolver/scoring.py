"""Name Similarity Scoring.

Scores a normalized query name against a normalized candidate name:
- Jaro-Winkler over the full strings (Jaro from rapidfuzz, Winkler
  prefix bonus applied here so weight and prefix cap are configurable)
- Extra-token guard: a candidate carrying significant words the query
  does not explain is a different entity ("nobody business pte ltd"
  is not "nobody pte ltd"), whatever its character similarity
"""

from dataclasses import dataclass, field
from typing import List, Sequence

from rapidfuzz.distance import Jaro

from contact_resolver.config import DEFAULT_MATCHING_CONFIG, MatchingConfig
from contact_resolver.normalize import significant_tokens


@dataclass
class NameScore:
    """Outcome of scoring one candidate name."""
    score: float
    jaro_winkler: float = 0.0
    extra_tokens: List[str] = field(default_factory=list)
    missing_tokens: List[str] = field(default_factory=list)

    @property
    def rejected(self) -> bool:
        return bool(self.extra_tokens or self.missing_tokens)


def jaro_winkler(
    a: str,
    b: str,
    prefix_weight: float = 0.1,
    max_prefix_length: int = 4,
    boost_threshold: float = 0.7,
) -> float:
    """Jaro-Winkler similarity in [0, 1].

    sim_w = sim_j + l * p * (1 - sim_j), where l is the common prefix
    length capped at max_prefix_length and p is prefix_weight. The bonus
    only applies when sim_j exceeds boost_threshold.

    Examples:
        >>> round(jaro_winkler("martha", "marhta"), 4)
        0.9611
    """
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0

    sim = Jaro.similarity(a, b)
    if sim <= boost_threshold:
        return sim

    prefix = 0
    for ca, cb in zip(a[:max_prefix_length], b[:max_prefix_length]):
        if ca != cb:
            break
        prefix += 1

    return min(1.0, sim + prefix * prefix_weight * (1.0 - sim))


def unexplained_tokens(
    tokens: Sequence[str],
    against: Sequence[str],
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> List[str]:
    """Tokens of `tokens` with no equal or near-equal token in `against`.

    Near-equal tolerates token-level typos ("tradng" explains "trading").
    """
    result = []
    for token in tokens:
        if token in against:
            continue
        best = max((_token_similarity(token, other, config) for other in against), default=0.0)
        if best < config.token_match_threshold:
            result.append(token)
    return result


def _token_similarity(a: str, b: str, config: MatchingConfig) -> float:
    return jaro_winkler(
        a, b,
        prefix_weight=config.prefix_weight,
        max_prefix_length=config.max_prefix_length,
        boost_threshold=config.winkler_boost_threshold,
    )


def extra_tokens(
    query: str,
    candidate: str,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> List[str]:
    """Significant tokens of the candidate that no query token explains.

    Examples:
        >>> extra_tokens("nobody pte ltd", "nobody business pte ltd")
        ['business']
    """
    return unexplained_tokens(
        significant_tokens(candidate, config.insignificant_tokens),
        significant_tokens(query, config.insignificant_tokens),
        config,
    )


def score_names(
    query: str,
    candidate: str,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> NameScore:
    """Score a normalized candidate name against a normalized query.

    Args:
        query: Normalized input name
        candidate: Normalized stored name (contact or alias)
        config: Matching configuration

    Returns:
        NameScore; score is 0.0 when the extra-token guard rejects
    """
    if not query or not candidate:
        return NameScore(score=0.0)
    if query == candidate:
        return NameScore(score=1.0, jaro_winkler=1.0)

    jw = _token_similarity(query, candidate, config)

    extra = extra_tokens(query, candidate, config)
    missing = []
    if config.symmetric_token_guard:
        missing = extra_tokens(candidate, query, config)

    if extra or missing:
        return NameScore(score=0.0, jaro_winkler=jw, extra_tokens=extra, missing_tokens=missing)

    return NameScore(score=jw, jaro_winkler=jw)
