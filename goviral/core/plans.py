"""
Static plan catalog.

Used when a plan name is not present in the database yet. The first lookup
persists the entry so later reads are store-backed and admin edits win.
"""

from typing import Any, Dict, Optional

# -1 means unlimited
STATIC_PLANS: Dict[str, Dict[str, Any]] = {
    "STARTER": {
        "name": "Starter",
        "price": "29",
        "regional_prices": {"NGN": "45000", "GBP": "23"},
        "trial_days": 7,
        "features": [
            "Connect up to 5 social platforms",
            "150 posts per month",
            "AI viral rewriter",
            "Advanced analytics",
            "Viral score & suggestions",
            "Bulk scheduling",
            "Email support",
        ],
        "max_posts": 150,
        "max_platforms": 5,
        "max_messages": 0,
    },
    "PRO": {
        "name": "Pro",
        "price": "59",
        "regional_prices": {"NGN": "90000", "GBP": "47"},
        "trial_days": 7,
        "features": [
            "Unlimited social platforms",
            "Unlimited posts per month",
            "AI viral rewriter",
            "Platform-specific AI captions",
            "Trending topics & hashtags",
            "Advanced analytics & reports",
            "Bulk scheduling",
            "Team collaboration",
            "Custom branding",
            "Priority support",
        ],
        "max_posts": -1,
        "max_platforms": -1,
        "max_messages": 0,
    },
}

DEFAULT_TRIAL_DAYS = 7


def get_static_plan(name: str) -> Optional[Dict[str, Any]]:
    """Case-insensitive lookup by display name."""
    wanted = name.strip().lower()
    for config in STATIC_PLANS.values():
        if config["name"].lower() == wanted:
            return config
    return None
