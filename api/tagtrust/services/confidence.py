"""Confidence Scorer: smoothed estimate of a tag's correctness from its votes.

Laplace (add-one) smoothing: confidence = (up + 1) / (up + down + 2).
A tag with no votes sits at 0.5 and no finite number of votes reaches
0.0 or 1.0, so a single vote cannot swing a tag to either extreme.

The value stored on tags.confidence is a cache; recount_tag_votes in
services.votes re-derives it from the votes table on every vote write.
"""


def confidence(upvotes: int, downvotes: int) -> float:
    """Return the smoothed confidence in the open interval (0, 1).

    Raises:
        ValueError: If either count is negative.
    """
    if upvotes < 0 or downvotes < 0:
        raise ValueError("vote counts must be non-negative")
    return (upvotes + 1) / (upvotes + downvotes + 2)
