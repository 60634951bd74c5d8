"""Background re-hosting of result videos."""
