"""Client-side conversation session, hand-off evaluation and voice interfaces."""
