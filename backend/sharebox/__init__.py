"""Ephemeral file sharing service."""
