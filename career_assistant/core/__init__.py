"""Classification, prompt composition and completion plumbing."""
