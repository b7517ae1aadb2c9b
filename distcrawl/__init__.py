"""
Distributed web crawler coordinated through a shared AWS store.
"""
__version__ = "1.0.0"
