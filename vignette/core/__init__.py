"""Core narrative primitives (state, scene model, events, errors).

Kept free of FastAPI and Redis concerns so it can be reused by the API, scripts, and tests.
"""
