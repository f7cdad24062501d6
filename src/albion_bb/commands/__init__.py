"""
Albion Battleboards CLI command modules.
"""
