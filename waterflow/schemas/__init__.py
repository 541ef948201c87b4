"""Pydantic schemas for rate schedules and reading submissions."""
