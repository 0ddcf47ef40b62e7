"""Application package for the progress ledger backend.

This package exposes the ledger, service, repository and model modules
used by the FastAPI application. It is intentionally lightweight;
individual modules contain the concrete implementations and documentation.
"""
