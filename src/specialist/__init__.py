"""Specialist: conversational agent toolkit with persistent fact memory."""

__version__ = "0.1.0"
