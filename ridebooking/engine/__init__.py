"""Booking decision engine: conflicts, proximity, ranking and orchestration."""
