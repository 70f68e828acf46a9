"""Pipelines recorded with the decision trail library."""
