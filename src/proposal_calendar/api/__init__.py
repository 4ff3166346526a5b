"""FastAPI application exposing the calendar service."""
