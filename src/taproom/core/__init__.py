"""Core primitives: errors, logging, settings, storage and transports."""
