"""
Confidence Scoring

Turns the similarity statistics of a result set into a bounded 0-100 score.
"""

import math
from typing import Optional, Sequence, Union

from ..config import ConfidenceConfig
from ..indexing.models import SearchHit


def score_confidence(
    results: Sequence[Union[SearchHit, float]],
    config: Optional[ConfidenceConfig] = None
) -> int:
    """
    Score how well a result set supports an answer.

    The base score is the mean similarity as a percentage. Bonuses reward a
    strong top hit, a tight spread between best and worst hit and having at
    least three hits. Non-empty results are clamped to
    [min_score, max_score]; empty results get empty_score.

    Args:
        results: Search hits or raw similarities
        config: Scoring constants

    Returns:
        Integer confidence
    """
    config = config or ConfidenceConfig()
    similarities = [r.similarity if isinstance(r, SearchHit) else float(r) for r in results]
    if not similarities:
        return config.empty_score

    top = max(similarities)
    bottom = min(similarities)
    mean = sum(similarities) / len(similarities)

    # Round half up so 0.625 -> 63
    confidence = int(math.floor(mean * 100 + 0.5))

    for minimum, bonus in config.top_bonuses:
        if top >= minimum:
            confidence += bonus
            break

    if len(similarities) >= 2:
        spread = top - bottom
        for maximum, bonus in config.consistency_bonuses:
            if spread <= maximum:
                confidence += bonus
                break

    if len(similarities) >= config.breadth_min_results:
        confidence += config.breadth_bonus

    return min(config.max_score, max(config.min_score, confidence))
