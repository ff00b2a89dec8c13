"""
rowgraph: rule-driven projection of relational rows into a property graph.
"""

__version__ = "0.1.0"
