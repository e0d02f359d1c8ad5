"""Service orchestration packages."""
