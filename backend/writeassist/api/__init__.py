"""HTTP API for the AI request engine."""
