"""Cluster orchestration backends."""
