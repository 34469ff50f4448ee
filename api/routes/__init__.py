"""api/routes/ -- Route handlers. Each module exposes a `router`."""
