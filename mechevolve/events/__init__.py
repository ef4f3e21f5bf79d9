"""Engine event bus."""
