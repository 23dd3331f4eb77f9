"""Scheduled scan trigger."""
