"""Compliance reporting API: Xero connections, BAS/FAS field derivation."""
