"""
voxlink - Voice assistant glue layer

Connects a voice front end to remote language-model and speech-recognition
services.

Core modules:
- env_upgrade: Merge an existing .env file into the current .env.template
- assistant: Streaming chat, transcript persistence and speech recognition
"""

__version__ = "0.4.2"
