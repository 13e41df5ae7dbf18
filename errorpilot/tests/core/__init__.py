"""Unit tests for core domain models."""
