"""Cross-cutting runtime support (logging, tracing)."""
