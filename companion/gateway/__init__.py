"""Companion gateway — FastAPI server, auth, config, and middleware."""
