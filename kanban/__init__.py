"""Multi-user Kanban board service."""

__version__ = "1.0.0"
