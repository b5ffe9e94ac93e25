"""Companion CLI — Click-based command interface."""
