"""CarScout listing discovery pipeline."""
