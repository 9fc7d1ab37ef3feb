"""Vanishing-edges tag: grid pursuit game core and session server."""
