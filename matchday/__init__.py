"""matchday: football data backend with cached lookups and scheduled content jobs."""

__version__ = "1.0.0"
