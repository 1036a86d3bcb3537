"""
Adaptive placement assessment and study plan synthesis service
"""
__version__ = "1.0.0"
