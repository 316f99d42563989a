"""Core infrastructure: configuration, logging, errors and constants."""
