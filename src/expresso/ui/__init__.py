"""Terminal and Alfred output."""
