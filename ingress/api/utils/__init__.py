"""Utility modules for API-specific functionality."""
