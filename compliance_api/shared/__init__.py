"""Shared utilities and cross-domain components.

This module contains utilities used across multiple domains:
- Exception classes with user-facing remediation hints
"""
