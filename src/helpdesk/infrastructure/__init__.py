"""Cross-cutting infrastructure: database engine and session lifecycle."""
