"""Cross-agent coordination of responses to one change."""
