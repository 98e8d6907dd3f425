"""FastAPI application, routes and SSE transport."""
