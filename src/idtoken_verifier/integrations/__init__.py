"""Framework integrations for idtoken-verifier."""
