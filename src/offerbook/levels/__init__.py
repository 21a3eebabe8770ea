"""Level providers."""
