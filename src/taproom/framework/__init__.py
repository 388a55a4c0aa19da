"""Application framework: alerting."""
