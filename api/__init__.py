"""HTTP host for the contract review workflow."""
