"""End-to-end scenarios for the request deduplication middleware.

Each scenario drives a FastAPI application through the ASGI adapter and
checks one aspect of deduplication as a client would observe it.
"""
