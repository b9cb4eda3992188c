"""LineageLens - Data Lineage Tracking Engine.

Models data assets and their transformation relationships as a directed
graph and answers where data came from and what a change would affect.
"""

__version__ = "0.1.0"
