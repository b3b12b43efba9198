"""Instant Preview - ephemeral hosting for uploaded static files."""
