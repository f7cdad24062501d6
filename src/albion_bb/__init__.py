"""
Albion Battleboards

Ingests battles and kill events from the Albion Online gameinfo API and
rolls them into per-alliance, per-guild and per-player battle statistics.
"""

__version__ = "1.0.0"
