"""recall CLI package."""
