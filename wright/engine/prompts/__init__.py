"""Packaged system prompts."""
