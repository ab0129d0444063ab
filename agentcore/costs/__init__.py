"""Cost estimation module."""

from .estimator import CostEstimator

__all__ = ["CostEstimator"]
