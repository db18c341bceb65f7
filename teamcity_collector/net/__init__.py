"""Networking helpers shared by the HTTP clients."""
