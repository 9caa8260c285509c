"""Logging plumbing shared by the CLI and the client."""
