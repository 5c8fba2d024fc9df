"""BAS and FAS compliance reporting built from Xero data."""
