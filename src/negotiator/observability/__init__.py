"""Logging, metrics, request-id middleware and Sentry integration."""
