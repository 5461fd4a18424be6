"""Shared HTTP helpers for infrastructure adapters."""
