"""HTTP API for reading mirrored state and admin sale operations."""
