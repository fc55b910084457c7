"""Murmur realtime core."""
