"""One-time project analysis that proposes an agent population."""
