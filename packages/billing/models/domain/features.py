"""
Domain models for feature flags: per-owner overrides and percentage rollouts.
"""

import hashlib
from typing import FrozenSet, Optional
from pydantic import BaseModel

from packages.billing.models.domain.enums import FeatureSource, PlanFeature


class FeatureOverride(BaseModel):
    id: int
    owner_user_id: int
    feature_key: str
    enabled: bool

    class Config:
        from_attributes = True


class FeatureRollout(BaseModel):
    id: int
    feature_key: str
    enabled: bool
    rollout_percentage: int
    seed: Optional[str] = None

    class Config:
        from_attributes = True


class FeatureStatus(BaseModel):
    """Whether a feature is on for an organization, and what decided it."""

    feature: PlanFeature
    enabled: bool
    source: FeatureSource
    rollout_percentage: Optional[int] = None


def rollout_bucket(seed: str, subject_key: str) -> int:
    """Stable bucket in [0, 100) for a subject under a rollout seed."""
    digest = hashlib.sha256(f"{seed}:{subject_key}".encode("utf-8")).digest()
    return int.from_bytes(digest[:4], "big") % 100


def resolve_feature_status(
    feature: PlanFeature,
    plan_features: FrozenSet[PlanFeature],
    override: Optional[FeatureOverride],
    rollout: Optional[FeatureRollout],
    subject_key: str,
) -> FeatureStatus:
    """Override wins, then the plan, then the percentage rollout."""
    if override is not None:
        return FeatureStatus(
            feature=feature, enabled=override.enabled, source=FeatureSource.OVERRIDE
        )

    if feature in plan_features:
        return FeatureStatus(feature=feature, enabled=True, source=FeatureSource.PLAN)

    if rollout is not None and rollout.enabled and rollout.rollout_percentage > 0:
        percentage = rollout.rollout_percentage
        enabled = percentage >= 100 or (
            rollout_bucket(rollout.seed or feature.value, subject_key) < percentage
        )
        return FeatureStatus(
            feature=feature,
            enabled=enabled,
            source=FeatureSource.ROLLOUT if enabled else FeatureSource.DISABLED,
            rollout_percentage=percentage,
        )

    return FeatureStatus(feature=feature, enabled=False, source=FeatureSource.DISABLED)
