"""Chunk storage, chunking and embedding for pagewise."""
