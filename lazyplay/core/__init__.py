"""Core simulation primitives (sequence stores, generators, scheduler, identity).

Kept free of Redis/FastAPI concerns so it can be driven by the API host, scripts, and tests.
"""
