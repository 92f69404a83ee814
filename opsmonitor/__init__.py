"""
opsmonitor - operational monitoring and metrics engine for Flask services.
"""

__version__ = '1.0.0'
