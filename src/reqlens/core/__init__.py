"""Core domain: models, metrics, interception and readiness."""
