"""Shared helpers for sendvideo."""
