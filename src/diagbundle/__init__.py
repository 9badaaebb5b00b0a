"""Build shareable diagnostic bundles from crash artifacts, logs and device metadata."""
