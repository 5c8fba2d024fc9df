"""Core application components.

This module provides the foundational components for the Compliance API:
- Database connection management via Prisma
- Application settings and configuration
- Logging setup and token encryption
"""
