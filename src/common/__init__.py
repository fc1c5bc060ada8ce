"""Shared helpers: logging, outcomes, and exceptions."""
