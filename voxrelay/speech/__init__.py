"""
voxrelay Speech

Speech recognition and synthesis capability.
"""

from voxrelay.speech.service import SpeechConfigurationError, SpeechError, SpeechService

__all__ = ["SpeechConfigurationError", "SpeechError", "SpeechService"]
