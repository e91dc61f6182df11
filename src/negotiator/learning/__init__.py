"""Post-call learning: best-deal selection and session lessons."""

from negotiator.learning.agent import run_learning, select_best_call

__all__ = ["run_learning", "select_best_call"]
