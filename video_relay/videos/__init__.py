"""Video task creation, status and listing."""
