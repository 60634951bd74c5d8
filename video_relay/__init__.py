"""Video Relay: orchestration backend for third-party video generation."""
