"""Request middleware: structured logging, request timing, rate limits."""
