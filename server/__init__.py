"""HTTP API, CLI and service wiring for pagewise."""
