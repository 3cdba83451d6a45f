"""Trigger/action automation: rules, message history, pipeline, event log."""
