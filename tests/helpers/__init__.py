"""
Test helper utilities for IHHT testing.

This module provides reusable utilities for:
- Generating synthetic reading streams
- Writing reading recordings to CSV
"""
