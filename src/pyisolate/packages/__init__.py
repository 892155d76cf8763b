"""Installed-distribution index, installer and uninstaller."""
