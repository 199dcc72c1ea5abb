"""Presence-and-broadcast engine for the shared chat feed."""
