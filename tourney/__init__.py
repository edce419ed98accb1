"""
tourney
Tournament progression engine: scheduling, advancement, standings and the
points betting market.
"""

__version__ = "0.3.0"
