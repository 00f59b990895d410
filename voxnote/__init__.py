"""Voice notes: live capture, streaming transcription and local summaries."""

__version__ = "0.1.0"
