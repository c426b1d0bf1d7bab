"""
stepforge-ai Server Package.

This package contains the web server exposing the PES engine over HTTP.

Subpackages:
    api: FastAPI route definitions and endpoint logic.
    core: Settings and constants.
    exception_handlers: Application-wide exception handlers.
    schemas: Pydantic schemas for API request/response validation.
    services: Engine wiring shared by the endpoints.
"""
