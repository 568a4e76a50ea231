"""CLI command modules for team-hub."""
