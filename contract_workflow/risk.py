"""Risk thresholds and review aggregation.

Every component that turns a score into a level goes through
``classify_risk`` so the Low/Medium/High boundaries exist in one place.
"""

import math
from typing import List, Optional

from contract_workflow.models import ReviewResult, RiskAssessment, RiskLevel


LOW_RISK_MAX = 30
MEDIUM_RISK_MAX = 70
DEFAULT_RISK_SCORE = 50

TARGET_RISK_SCORE = LOW_RISK_MAX
MAX_NEGOTIATION_ITERATIONS = 3


def classify_risk(score: int) -> RiskLevel:
    """Map a score in [0, 100] to its risk level."""
    if score <= LOW_RISK_MAX:
        return "Low"
    if score <= MEDIUM_RISK_MAX:
        return "Medium"
    return "High"


def round_half_away_from_zero(value: float) -> int:
    """Round to the nearest integer, ties away from zero (2.5 -> 3, -2.5 -> -3)."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def clamp_score(score: int) -> int:
    return max(0, min(100, score))


def distinct_concerns(reviews: List[ReviewResult]) -> List[str]:
    """Union of all concern lists, first occurrence order, case-sensitive."""
    seen = set()
    concerns = []
    for review in reviews:
        for concern in review.concerns or []:
            if concern not in seen:
                seen.add(concern)
                concerns.append(concern)
    return concerns


def generate_summary(reviews: List[ReviewResult], overall_score: int, risk_level: RiskLevel) -> str:
    """Build the human-readable risk summary.

    Args:
        reviews: Reviews that went into the score
        overall_score: Aggregated score
        risk_level: Level derived from the score

    Returns:
        Multi-line summary with one block per reviewer
    """
    reviewer_names = ", ".join(r.reviewer for r in reviews) or "none"
    lines = [
        "[Overall Risk Assessment]",
        f"Risk level: {risk_level} (score: {overall_score}/100)",
        f"Reviewers: {reviewer_names}",
        "",
    ]
    for review in reviews:
        lines.append(f"* {review.reviewer} (score: {review.risk_score})")
        lines.append(f"  {review.opinion}")
        lines.append("")

    return "\n".join(lines).rstrip()


def aggregate_reviews(reviews: List[ReviewResult]) -> RiskAssessment:
    """Combine specialist reviews into one RiskAssessment.

    The overall score is the mean of the review scores rounded half away
    from zero. Without any review the score is the Medium default of 50.

    Args:
        reviews: Specialist reviews in declaration order

    Returns:
        New RiskAssessment
    """
    if reviews:
        overall_score = round_half_away_from_zero(
            sum(r.risk_score for r in reviews) / len(reviews)
        )
    else:
        overall_score = DEFAULT_RISK_SCORE

    risk_level = classify_risk(overall_score)
    concerns = distinct_concerns(reviews)

    return RiskAssessment(
        overall_risk_score=overall_score,
        risk_level=risk_level,
        reviews=list(reviews),
        summary=generate_summary(reviews, overall_score, risk_level),
        key_concerns=concerns or None
    )


def placeholder_assessment(score: int, summary: str, reviews: Optional[List[ReviewResult]] = None) -> RiskAssessment:
    """Medium-level stand-in used when a risk snapshot is missing from shared state."""
    return RiskAssessment(
        overall_risk_score=clamp_score(score),
        risk_level="Medium",
        reviews=reviews or [],
        summary=summary
    )
