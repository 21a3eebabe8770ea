"""Venue integrations: capability set, REST bridge, ledger offer venue."""
