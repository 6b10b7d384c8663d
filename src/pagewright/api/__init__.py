"""HTTP relay for provider requests."""
