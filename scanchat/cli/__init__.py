"""Command-line interface for scanchat."""
