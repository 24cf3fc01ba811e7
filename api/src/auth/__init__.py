"""Bearer-token authentication for the progress API."""
