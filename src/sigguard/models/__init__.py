"""Data models for signature records."""
