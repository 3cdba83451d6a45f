"""Event-bus middleware."""
