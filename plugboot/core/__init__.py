"""Core layer — models, services, persistence and the bootstrap engine."""
