"""HTTP API for notifications."""
