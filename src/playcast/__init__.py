"""PlayCast - turn pasted links and search terms into playable streams."""
