"""Task queue, storage backends, rules and a user store for saving chat files."""

__version__ = "0.1.0"