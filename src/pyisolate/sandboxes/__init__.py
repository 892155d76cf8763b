"""Sandbox lifecycle, declaration loading and cleanup."""
