"""Shared models, constants, configuration and error types."""
