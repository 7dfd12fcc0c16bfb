"""Command-line helpers for maintaining VietPlayer data."""
