"""Settings and filesystem locations."""
