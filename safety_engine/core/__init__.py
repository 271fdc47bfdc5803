"""Cross-cutting concerns: errors, logging, cancellation."""
