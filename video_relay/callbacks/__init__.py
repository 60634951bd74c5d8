"""Provider webhook receiver."""
