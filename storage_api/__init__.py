"""Archive storage API: HTTP surface and chunked transfer protocol engine."""
