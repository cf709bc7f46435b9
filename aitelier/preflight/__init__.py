"""
Preflight: dataset readiness checks run before a training run starts.
"""

from .estimates import estimate_training_cost, estimate_training_duration
from .evaluator import PreflightEvaluator
from .schema import PreflightReport

__all__ = [
    "PreflightEvaluator",
    "PreflightReport",
    "estimate_training_cost",
    "estimate_training_duration",
]
