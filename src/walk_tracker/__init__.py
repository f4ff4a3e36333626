"""Walk tracking: live GPS session recording, distance and explored tiles."""
