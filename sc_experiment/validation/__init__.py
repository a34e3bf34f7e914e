"""
Validation layer: shape checks used by every mutator (`shapes`) and the
full invariant audit (`experiment_validation`).
"""
