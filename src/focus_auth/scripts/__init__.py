"""Maintenance scripts run outside the request path."""
