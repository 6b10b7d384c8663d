"""pagewright: AI site-builder chat with resilient multi-provider routing."""

__version__ = "0.1.0"
