"""HTTP layer: FastAPI application and billing routers."""
