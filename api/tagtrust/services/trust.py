"""Reputation score formula and the Trust Classifier.

Both are pure functions of a user's counters. They are called by the ledger
on the live path and by replay, so the constants below are part of the
replay contract: changing one changes what every past event folds to.

Design notes:
- A user with no decided tags gets the neutral prior 0.5 regardless of
  votes received on still-pending tags; newcomers are not penalized before
  any moderation evidence exists.
- The vote ratio defaults to 0.5 when no votes have been received.
- Scores are rounded to 6 decimal places so that threshold comparisons
  (0.80, 0.90) are not at the mercy of float accumulation error.
- The classifier walks TRUST_TIERS top-down; a user meeting a tier's score
  but not its volume falls through to the next tier whose conditions hold.
"""

import enum
from typing import Optional

APPROVAL_WEIGHT = 0.7
VOTE_WEIGHT = 0.3
NEUTRAL_PRIOR = 0.5
SCORE_PRECISION = 6

# (minimum decided tags, bonus); first match wins
VOLUME_BONUS_TIERS: tuple[tuple[int, float], ...] = (
    (50, 0.10),
    (20, 0.05),
)


class TrustLevel(str, enum.Enum):
    new = "new"
    learning = "learning"
    trusted = "trusted"
    expert = "expert"


# Decreasing precedence: (level, minimum score, minimum decided tags)
TRUST_TIERS: tuple[tuple[TrustLevel, float, int], ...] = (
    (TrustLevel.expert, 0.90, 50),
    (TrustLevel.trusted, 0.80, 10),
    (TrustLevel.learning, 0.60, 3),
)

AUTO_APPROVE_LEVELS = frozenset({TrustLevel.trusted, TrustLevel.expert})

TRUST_ORDER = {
    TrustLevel.new: 0,
    TrustLevel.learning: 1,
    TrustLevel.trusted: 2,
    TrustLevel.expert: 3,
}


def volume_bonus(decided_tags: int) -> float:
    for minimum, bonus in VOLUME_BONUS_TIERS:
        if decided_tags >= minimum:
            return bonus
    return 0.0


def reputation_score(
    approved_tags: int,
    rejected_tags: int,
    upvotes_received: int,
    downvotes_received: int,
) -> float:
    """Compute the bounded reputation score for a user's counters.

    approval_rate = approved / (approved + rejected)
    vote_ratio    = upvotes / (upvotes + downvotes), 0.5 with no votes
    score         = clamp(0.7 * approval_rate + 0.3 * vote_ratio + bonus, 0, 1)

    Args:
        approved_tags: Tags approved by an admin or the auto-approval policy.
        rejected_tags: Tags rejected by an admin.
        upvotes_received: Upvotes currently standing on the user's tags.
        downvotes_received: Downvotes currently standing on the user's tags.

    Returns:
        Score in [0, 1]; exactly NEUTRAL_PRIOR when no tag has been decided.
    """
    decided = approved_tags + rejected_tags
    if decided <= 0:
        return NEUTRAL_PRIOR

    approval_rate = approved_tags / max(1, decided)
    total_votes = upvotes_received + downvotes_received
    if total_votes > 0:
        vote_ratio = upvotes_received / total_votes
    else:
        vote_ratio = NEUTRAL_PRIOR

    base = APPROVAL_WEIGHT * approval_rate + VOTE_WEIGHT * vote_ratio
    score = min(1.0, max(0.0, base + volume_bonus(decided)))
    return round(score, SCORE_PRECISION)


def classify_trust(score: float, decided_tags: int) -> TrustLevel:
    """Map (reputation score, decided tag count) to a trust level.

    Tiers are checked in decreasing precedence; the first tier whose score
    and volume thresholds are both met wins, otherwise the user is `new`.
    """
    for level, min_score, min_decided in TRUST_TIERS:
        if score >= min_score and decided_tags >= min_decided:
            return level
    return TrustLevel.new


def effective_trust_level(
    classified: TrustLevel, override: Optional[TrustLevel]
) -> TrustLevel:
    """An admin override, while set, replaces the classified level."""
    return override if override is not None else classified


def is_auto_approve(level: TrustLevel) -> bool:
    return level in AUTO_APPROVE_LEVELS
