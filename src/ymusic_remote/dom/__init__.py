"""Player bar selectors, page scripts and result models."""
