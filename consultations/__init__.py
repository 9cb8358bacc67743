"""Coffee Chat consultation booking service."""
