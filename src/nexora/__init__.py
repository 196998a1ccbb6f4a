"""NexoraOS: AI ebook and monetization asset generation backend."""

__version__ = "0.1.0"
