"""
IVR tool-call router for the credit union voice assistant.
"""

__version__ = "1.0.0"
