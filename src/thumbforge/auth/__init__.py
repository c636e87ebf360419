"""Bearer-token verification for the generation API."""
