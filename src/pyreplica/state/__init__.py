"""State/store layer.

This package is the single source of truth for how incoming child events
are reconciled into a sorted item list and folded into a namespace's slice
of the shared store.
"""
