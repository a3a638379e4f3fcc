"""
voxrelay Inference

Client for the language-model inference endpoint.
"""

from voxrelay.inference.client import (
    CompletionOptions,
    FoundryClient,
    InferenceConfigurationError,
    InferenceError,
    InferenceMessage,
    InferenceResponseError,
)

__all__ = [
    "CompletionOptions",
    "FoundryClient",
    "InferenceConfigurationError",
    "InferenceError",
    "InferenceMessage",
    "InferenceResponseError",
]
