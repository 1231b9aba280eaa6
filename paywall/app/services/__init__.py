"""Service wiring for the paywall application."""
