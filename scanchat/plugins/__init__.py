"""Plugin command parsing, dispatch and execution."""
