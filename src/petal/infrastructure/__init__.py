"""Infrastructure layer: Spotify integration, persistence and observability."""
