"""Generation of the shared asset encryption key."""
