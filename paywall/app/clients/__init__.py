"""Clients for remote paywall collaborators."""

from .http_backend import HttpPaywallBackend

__all__ = ["HttpPaywallBackend"]
