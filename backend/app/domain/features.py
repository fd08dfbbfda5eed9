"""
Feature Matrix

Static mapping of feature name -> plan tiers allowed to use it, and the
gate that consults it. Pure and synchronous so it can be evaluated from
already-loaded preferences without touching the network.
"""

from typing import Optional, Union

from app.domain.subscription import PlanFeature, PlanTier


FEATURE_MATRIX: dict[str, frozenset[PlanTier]] = {
    "basicDashboard": frozenset({PlanTier.FREE, PlanTier.PRO}),
    "manualImportExport": frozenset({PlanTier.FREE, PlanTier.PRO}),
    "advancedAnalytics": frozenset({PlanTier.PRO}),
    "unlimitedTransactions": frozenset({PlanTier.PRO}),
    "googleDriveBackup": frozenset({PlanTier.PRO}),
    "familyWorkspace": frozenset({PlanTier.PRO}),
    "goalSimulator": frozenset({PlanTier.PRO}),
    "recurringBillAlerts": frozenset({PlanTier.PRO}),
    "customCategories": frozenset({PlanTier.PRO}),
}

# Human-readable copy for the plan comparison table
FEATURE_DESCRIPTIONS: dict[str, tuple[str, str]] = {
    "basicDashboard": ("Basic Dashboard", "Simple visualizations and stats"),
    "manualImportExport": ("Manual Import/Export", "CSV and JSON backup options"),
    "advancedAnalytics": ("Advanced Analytics", "Time-of-day, geo, seasonality insights"),
    "unlimitedTransactions": ("Unlimited Transactions", "No limits on transaction history"),
    "googleDriveBackup": ("Google Drive Backup", "Automated daily encrypted backups"),
    "familyWorkspace": ("Family Workspace", "Shared access for up to 5 users"),
    "goalSimulator": ("Goal Simulator", "Project savings goals over time"),
    "recurringBillAlerts": ("Recurring Bill Alerts", "Reminders before recurring charges"),
    "customCategories": ("Custom Categories", "Create your own categories and emojis"),
}


def _coerce_tier(plan_tier: Union[PlanTier, str, None]) -> Optional[PlanTier]:
    if plan_tier is None:
        return None
    if isinstance(plan_tier, PlanTier):
        return plan_tier
    try:
        return PlanTier(plan_tier)
    except ValueError:
        return None


def is_feature_available(feature: str, plan_tier: Union[PlanTier, str, None]) -> bool:
    """
    Decide whether a plan tier may use a feature.

    Unknown features and unknown tiers are unavailable.
    """
    tier = _coerce_tier(plan_tier)
    if tier is None:
        return False
    return tier in FEATURE_MATRIX.get(feature, frozenset())


def feature_availability(plan_tier: Union[PlanTier, str, None]) -> dict[str, bool]:
    """Gate outcome for every feature in the matrix."""
    return {feature: is_feature_available(feature, plan_tier) for feature in FEATURE_MATRIX}


def plan_features() -> list[PlanFeature]:
    """Comparison table rows, in matrix order."""
    rows = []
    for key, allowed in FEATURE_MATRIX.items():
        title, description = FEATURE_DESCRIPTIONS.get(key, (key, ""))
        rows.append(
            PlanFeature(
                key=key,
                title=title,
                description=description,
                tiers={tier: tier in allowed for tier in PlanTier},
            )
        )
    return rows
