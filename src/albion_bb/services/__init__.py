"""
Albion Battleboards Services

Kill-feed ingestion, battle discovery and processing, persistence and
notifications.
"""
