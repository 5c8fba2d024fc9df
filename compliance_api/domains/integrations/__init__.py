"""Third-party integrations domain.

This module manages integrations with external accounting systems:
- Xero OAuth connection lifecycle and token refresh
- Authorized tenant (organization) validation
"""
