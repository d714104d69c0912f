"""Scouting validation: field comparison, strategies and the orchestrating service."""
