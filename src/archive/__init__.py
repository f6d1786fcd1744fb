"""Archive container support."""
