"""
fsconsul command-line interface.
"""
