"""
voxrelay

Conversational relay between a chat platform, a language-model inference
endpoint and a speech engine, backed by a self-healing Azure credential chain.
"""

__version__ = "0.1.0"
