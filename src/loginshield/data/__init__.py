"""Data layer - persisted record schemas."""
