"""Pydantic models for documents and API payloads."""
