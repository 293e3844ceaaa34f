"""HTTP API layer built on FastAPI.

Key components:
- **main**: Application factory and lifecycle management
- **pipeline**: Per-route body validation and reference resolution
- **middleware**: Correlation IDs, request logging and error formatting
- **schemas**: Pydantic models for error responses
- **utils**: orjson-backed JSON responses
"""
