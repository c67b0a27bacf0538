"""Subscription tiers: free < basic < premium."""

TIER_ORDER = {"free": 0, "basic": 1, "premium": 2}
DEFAULT_TIER = "free"


def normalize_tier(tier: str | None) -> str | None:
    if not tier:
        return None
    value = tier.strip().lower()
    return value if value in TIER_ORDER else None


def tier_rank(tier: str | None, default: int = 0) -> int:
    normalized = normalize_tier(tier)
    if normalized is None:
        return default
    return TIER_ORDER[normalized]


def can_access(user_tier: str | None, course_tier: str | None) -> bool:
    # unknown learner tiers count as free, unknown course tiers as premium
    user_rank = tier_rank(user_tier, default=TIER_ORDER["free"])
    course_rank = tier_rank(course_tier, default=TIER_ORDER["premium"]) if course_tier else 0
    return user_rank >= course_rank


def required_tier(course_tier: str | None, price: float | None = None) -> str:
    """Tier a learner needs to enroll; a priced course is never free."""
    tier = normalize_tier(course_tier) or ("premium" if course_tier else DEFAULT_TIER)
    if price and price > 0 and tier == DEFAULT_TIER:
        return "basic"
    return tier
