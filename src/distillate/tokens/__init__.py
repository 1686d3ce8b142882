"""Token estimation."""

from distillate.tokens.estimator import TokenEstimator, to_text

__all__ = ["TokenEstimator", "to_text"]
