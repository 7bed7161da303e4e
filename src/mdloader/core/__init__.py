"""
Core runtime helpers shared by the loader.
"""
