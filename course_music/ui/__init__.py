"""Terminal renderers for the course overview."""
