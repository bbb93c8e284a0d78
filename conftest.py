"""Makes the repository root importable so tests can import ``src.dagrad``."""
