"""
Couche HTTP (routes FastAPI).
"""
