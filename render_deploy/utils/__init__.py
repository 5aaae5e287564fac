"""Utility modules for render-deploy."""
