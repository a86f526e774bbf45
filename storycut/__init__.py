"""Storycut: timeline compositing, waveform data and remote rendering for a short-form video editor."""

__version__ = "0.1.0"
