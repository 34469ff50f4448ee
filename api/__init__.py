"""api/ -- HTTP layer: app factory, routes, transport models."""
