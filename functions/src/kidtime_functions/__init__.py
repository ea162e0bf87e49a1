"""KidTime ledger functions: time requests, awards, household and voice."""
