"""
Library Kernel - lending and inventory-consistency engine

A transactional core for a library circulation platform with:
- Row-locked borrow / return of shared book inventory
- Late fees computed at return time
- Rating aggregates recomputed from the full review set
- Append-only audit trail
- A consistency guard that checks every book write
"""

__version__ = "0.1.0"
