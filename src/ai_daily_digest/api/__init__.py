"""HTTP and SSE surface."""

__all__ = ["app", "schemas"]
