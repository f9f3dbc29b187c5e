"""
PlayPath - learning progression and motivation engine for young children.

Decides which content a child can open next, which difficulty tier fits,
how many stars an attempt earns, and which achievements, crown challenges
and streak rewards fire.
"""

__version__ = "0.1.0"
