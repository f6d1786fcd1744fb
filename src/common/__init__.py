"""Shared infrastructure: errors, cancellation, logging and HTTP fetching."""
