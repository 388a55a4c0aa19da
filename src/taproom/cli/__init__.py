"""Command-line interface (``taproom``)."""
