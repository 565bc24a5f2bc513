"""Data models for the Noted engine."""
