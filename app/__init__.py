"""CineSync application package: TMDB catalog sync, storage and HTTP routes."""
