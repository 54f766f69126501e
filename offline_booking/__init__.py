"""Offline-resilient booking submission queue."""
