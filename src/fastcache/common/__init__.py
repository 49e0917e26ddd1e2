"""Shared helpers: logging, filesystem utilities and locks."""
