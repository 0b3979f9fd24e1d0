"""Shared utilities: logging and result handling."""
