"""Shared infrastructure: async helpers, logging setup and timezone resolution."""
