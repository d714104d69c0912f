"""Scouter accuracy validation and ELO ratings for FRC scouting."""

__version__ = "0.1.0"
