"""Adaptive training engine: phase clock, advisor, adjustment and metrics."""
