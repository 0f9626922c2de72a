"""HTTP surface for moderation collaborators."""
