"""HTTP API for the Tally Stage service."""
