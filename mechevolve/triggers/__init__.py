"""Deciding which agents care about a change."""
