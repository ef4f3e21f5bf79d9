"""The evolution loop: scoring, responding, and the ledger."""
