"""Adapters — bindings to tools outside the interpreter."""
