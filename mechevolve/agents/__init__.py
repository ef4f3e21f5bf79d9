"""Agent records, persistence and the factory that creates them."""
