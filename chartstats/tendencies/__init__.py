"""Situational play-calling tendencies."""
