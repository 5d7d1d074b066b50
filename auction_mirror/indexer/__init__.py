"""Contract event listener and state reconciler."""

from .reconciler import AuctionReconciler, EventOutcome, SubscriptionHandle

__all__ = ["AuctionReconciler", "EventOutcome", "SubscriptionHandle"]
