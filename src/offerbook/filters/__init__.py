"""Submit filters applied to target orders."""
