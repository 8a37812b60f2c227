"""Live browser preview for description files."""
