"""HTTP JSON API for saving walks and reading history and stats."""
