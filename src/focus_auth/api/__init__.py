"""HTTP API for the Focus auth bridge."""
