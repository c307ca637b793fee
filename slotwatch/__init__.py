"""
SLOTWATCH

Tracks capacity-bounded drop-in sessions, alerts when one becomes worth
acting on, and plans when to look again.
"""

__version__ = "0.1.0"
