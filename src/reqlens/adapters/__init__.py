"""Adapters binding the core to frameworks and storage."""
