"""Process environment capture and restore."""
