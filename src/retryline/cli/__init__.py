"""Command line interface (``retryline``)."""
