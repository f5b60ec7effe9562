"""
NIM Proxy - proxy OpenAI-compatible vers l'API NVIDIA NIM.
"""

__version__ = "1.0.0"
