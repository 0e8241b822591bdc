"""
Capability scoring shared by executors and the router.
"""

from .models import AgentTask
from .roles import ExecutorRole

KEYWORD_SCORE = 0.15
LONG_KEYWORD_LENGTH = 5
LONG_KEYWORD_BONUS = 1.5
CAPABILITY_MATCH_SCORE = 0.9


def keyword_score(
    content: str,
    keywords: tuple[str, ...] | list[str],
    weight: float = 1.0,
) -> tuple[float, list[str]]:
    """
    Weighted keyword containment.

    Each contained keyword adds ``KEYWORD_SCORE``, keywords longer than
    ``LONG_KEYWORD_LENGTH`` characters count ``LONG_KEYWORD_BONUS`` times as
    much. The sum is scaled by ``weight`` and capped at 1.0.

    Returns:
        (score, matched keywords in lexicon order)
    """
    text = content.lower()
    score = 0.0
    matched: list[str] = []
    for keyword in keywords:
        if keyword.lower() in text:
            matched.append(keyword)
            bonus = LONG_KEYWORD_BONUS if len(keyword) > LONG_KEYWORD_LENGTH else 1.0
            score += KEYWORD_SCORE * bonus
    return min(1.0, score * weight), matched


def score_capability(role: ExecutorRole, task: AgentTask) -> float:
    """How well ``role`` fits ``task``, in [0, 1]."""
    declared = (task.type or "").strip().lower()
    if declared == role.type.value:
        return 1.0
    if declared and declared in role.capabilities:
        return CAPABILITY_MATCH_SCORE
    score, _ = keyword_score(task.content or "", role.keywords)
    return score
