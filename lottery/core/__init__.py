"""Core lottery primitives (lifecycle notifications).

Kept free of FastAPI concerns so it can be reused by API routes, workers, and tests.
"""
