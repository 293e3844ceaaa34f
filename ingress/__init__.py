"""Ingress - request body pipeline for FastAPI services.

Ingress validates inbound request bodies against pydantic schemas, resolves
external references embedded in them (identifiers replaced by full objects
fetched concurrently), and formats every uncaught error as JSON.

Architecture Overview:
- **API Layer**: FastAPI application, middleware and the per-route pipeline
- **Core Layer**: Configuration, logging, tracing and the exception hierarchy
"""
