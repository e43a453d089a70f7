"""StudyFlow: collaborative study task board with realtime synchronization."""

__version__ = "0.1.0"
