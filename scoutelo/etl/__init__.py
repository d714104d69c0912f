"""Official-result providers."""
