"""API caller authentication: bearer JWTs scoped to a company."""
