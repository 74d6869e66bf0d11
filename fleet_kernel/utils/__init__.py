"""Shared kernel utilities."""
