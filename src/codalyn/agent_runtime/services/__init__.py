"""Agent runtime services: memory, segmentation, persistence and sandbox management."""
