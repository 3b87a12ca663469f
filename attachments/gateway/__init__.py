"""Authentication gate and name-rewriting routes."""
