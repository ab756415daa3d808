"""Kubernetes tool adapters — helm and kubectl."""
