"""Infrastructure Layer — external service clients and cross-cutting concerns.

Invariants:
    - Infrastructure never imports from services/ or api/
    - All external failures mapped to the core/errors.py hierarchy

Design Decisions:
    - Thin wrappers over raw clients (httpx, anthropic, SQLAlchemy)
"""
