"""Core pipeline: archiver, content store, pointer protocol, anchoring."""
