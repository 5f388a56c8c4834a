"""FastAPI application for the StudioShot generation pipeline.

Exposes the REST surface over :mod:`studioshot.core`:

- ``main.py`` — application instance, routes and the ``studioshot`` CLI.
- ``models.py`` — Pydantic request/response schemas.
"""
