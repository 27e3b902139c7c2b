"""Repository layer."""
