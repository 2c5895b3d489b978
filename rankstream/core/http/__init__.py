"""FastAPI application wiring: app factory, dependencies and error envelopes."""
