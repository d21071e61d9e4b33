"""HTTP API: dependencies and route definitions."""
