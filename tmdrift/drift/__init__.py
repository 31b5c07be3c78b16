"""Drift reconciliation: entity processors, mapping reconciler, and the pipeline service."""
