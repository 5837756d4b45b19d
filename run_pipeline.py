#!/usr/bin/env python3
"""
Runner script for the Realtime Voice Pipeline.

This script provides a simple way to run the pipeline with default settings.
For more advanced usage, import the module and create a custom configuration.

Usage:
    python run_pipeline.py
"""

from realtime_voice_pipeline.core import main


if __name__ == '__main__':
    main()
