"""HTTP layer: FastAPI app factory, routes and auth dependencies."""
