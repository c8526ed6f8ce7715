"""Session model and lifecycle controller."""
