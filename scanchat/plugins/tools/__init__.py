"""Flag tables for the supported scanning tools."""
