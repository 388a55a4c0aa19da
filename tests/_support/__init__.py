"""Test doubles shared across the taproom test suite."""
