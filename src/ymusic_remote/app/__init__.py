"""Desktop app launching and lifecycle tracking."""
