"""CDP session, transport and recovery."""
