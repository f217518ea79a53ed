"""Blindpod: podcast subscriptions with an unlistened-episode feed."""

__version__ = "0.1.0"
