"""ThumbForge: YouTube thumbnail generation service."""
