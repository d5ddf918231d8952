"""Entitlement checks performed before each chat turn."""
