"""
Portal client package.
"""
