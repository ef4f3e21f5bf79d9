"""Per-agent pattern memory."""
