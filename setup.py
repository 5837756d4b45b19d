#!/usr/bin/env python3
"""
Setup script for the Realtime Voice Pipeline module.
"""

from setuptools import setup, find_packages

with open("realtime_voice_pipeline/README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="realtime-voice-pipeline",
    version="1.0.0",
    author="Your Name",
    author_email="your.email@example.com",
    description="A realtime voice conversation pipeline with single-flight turns and streaming playback",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/yourusername/realtime-voice-pipeline",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Multimedia :: Sound/Audio :: Speech",
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
    ],
    python_requires=">=3.10",
    install_requires=[
        "numpy",
        "sounddevice",
        "webrtcvad",
        "faster-whisper",
        "ollama",
        "pydantic>=2.0.0",
    ],
    extras_require={
        "edge-tts": [
            "edge-tts",
            "pydub",
            "simpleaudio",
        ],
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
        "all": [
            "edge-tts",
            "pydub",
            "simpleaudio",
            "pytest",
            "pytest-asyncio",
        ],
    },
    entry_points={
        "console_scripts": [
            "realtime-voice-pipeline=realtime_voice_pipeline.core:main",
        ],
    },
    include_package_data=True,
    zip_safe=False,
)
