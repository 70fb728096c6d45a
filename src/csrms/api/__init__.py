"""HTTP API - FastAPI application, routes and dependency wiring."""
