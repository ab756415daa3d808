"""Verification-suite adapters."""
