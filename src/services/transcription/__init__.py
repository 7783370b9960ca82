"""
Transcription module - provider abstraction and the job lifecycle.

Factory function for creating provider instances based on configuration.
"""

from .base import BaseTranscriptionProvider

__all__ = ["BaseTranscriptionProvider", "create_provider"]


def create_provider(provider: str, **kwargs) -> BaseTranscriptionProvider:
    """
    Factory function to create a transcription provider by name.

    Args:
        provider: Provider name ("assemblyai")
        **kwargs: Provider-specific configuration

    Returns:
        BaseTranscriptionProvider implementation instance

    Raises:
        ValueError: If provider is unknown
    """
    if provider == "assemblyai":
        from .assemblyai import AssemblyAIProvider
        return AssemblyAIProvider(**kwargs)
    else:
        raise ValueError(f"Unknown transcription provider: {provider}")
