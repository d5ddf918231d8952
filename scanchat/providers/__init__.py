"""Completion backends and tokenizer."""
