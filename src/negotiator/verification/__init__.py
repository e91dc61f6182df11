"""Best-deal verification."""

from negotiator.verification.agent import verify_best_deal

__all__ = ["verify_best_deal"]
