"""Toggleable per-tenant features"""

from wagate.features.scheduler import FEATURES, PERIODIC_FEATURES, FeatureScheduler

__all__ = ["FEATURES", "PERIODIC_FEATURES", "FeatureScheduler"]
