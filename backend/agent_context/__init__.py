"""
Agent context engine: working memory, long-term memory and recall,
assembled into budgeted context windows for agent turns.
"""
__version__ = "1.0.0"
