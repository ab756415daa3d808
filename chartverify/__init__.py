"""chartverify — install, upgrade and verify Helm charts against a live cluster."""

__version__ = "0.1.0"
