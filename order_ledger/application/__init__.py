"""Application layer: command handlers, projectors and the conflict retry helper."""
