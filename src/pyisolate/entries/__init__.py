"""Declared dependencies."""
