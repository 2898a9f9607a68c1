"""
Gallery Access API: share links, invitation codes and the access engine
that decides who sees a private gallery.
"""
__version__ = "1.0.0"
