"""Tests for adapter implementations.

These tests exercise adapters against mocked backend responses
to validate correct translation between backend wire formats and
core domain models.
"""
