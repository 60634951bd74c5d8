"""Client for the upstream video-generation provider."""
