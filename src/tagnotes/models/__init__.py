"""Data models for tagnotes."""
