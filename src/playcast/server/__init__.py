"""PlayCast server: stream resolution, playback queue, and the REST API."""
