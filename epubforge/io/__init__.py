"""Document extraction, image encoding, and session persistence."""
