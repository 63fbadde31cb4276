"""
Associa Core - Reasoning, prediction, learning and generation over the
weighted feature graph.

# ---- Changelog ----
# [2026-10-19] Initial creation.
#   What: Package init for associa_core.
#   Why:  Groups the graph algorithms (reasoning engine, brain, knowledge
#         integrator, sequence generator) behind one package, with the
#         store contract living beside it in feature_graph.py.
#   Where: associa_core/__init__.py
# -------------------
"""

__version__ = "0.1.0"
