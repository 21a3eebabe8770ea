"""Capital liabilities and order reconciliation."""
