"""Stockwatch — Alerts Package.

Inventory alert logic for the daily run.
Components:
  - settings: per-store alert settings (defaults + stored overrides)
  - classifier: expired / near-expiry / low-stock classification
  - pipeline: sequential, failure-isolated batch over all stores
"""

from stockwatch.alerts.classifier import apply_toggles, classify_inventory, reference_today
from stockwatch.alerts.pipeline import AlertPipeline
from stockwatch.alerts.settings import merge_settings, resolve_settings

__all__ = [
    "apply_toggles",
    "classify_inventory",
    "reference_today",
    "AlertPipeline",
    "merge_settings",
    "resolve_settings",
]
