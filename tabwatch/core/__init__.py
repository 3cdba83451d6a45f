"""Core: config, errors, events, bus and the kernel."""
