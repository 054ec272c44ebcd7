"""Flask web interface for the Visual Build Core."""
