#!/usr/bin/env python3
"""
Example usage of the Realtime Voice Pipeline module with custom configuration.

This demonstrates how to customize the pipeline behavior by modifying the configuration.
"""

import asyncio
import logging

from realtime_voice_pipeline import Config
from realtime_voice_pipeline.core import run


def custom_config() -> Config:
    """Custom configuration example."""
    return Config(
        # Use a different model
        ollama_model="llama3.1:8b",
        # Customize system prompt
        system_prompt=(
            "You are Cora, a helpful and friendly AI assistant. You speak in a warm, conversational tone "
            "and provide helpful, concise responses. Keep your answers brief but informative."
        ),
        # More aggressive voice detection
        vad_aggressiveness=3,
        # Wait a little less before treating a pause as the end of a thought
        silence_window_ms=800,
        voice_name="en-US-AriaNeural",
        conversation_id="cora",
    )


if __name__ == '__main__':
    logging.basicConfig(level=logging.WARNING)
    try:
        asyncio.run(run(custom_config()))
    except KeyboardInterrupt:
        print("\nGoodbye!")
