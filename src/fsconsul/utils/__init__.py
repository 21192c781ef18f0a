"""
Utility modules for fsconsul.
"""
