"""
Schemas module - request/response schemas for API endpoints.

All schemas live in niena.schemas.schemas.
"""
