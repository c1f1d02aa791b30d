"""Challenge boards: multi-agent structured debate before a human decision."""
