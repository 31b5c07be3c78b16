"""Domain entities and the drift aggregate."""
