"""Core infrastructure: errors, results, logging, settings, persistence, events."""
