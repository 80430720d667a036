"""
Control server operation handlers, grouped by resource:
- mission_ops: missions/* operations
"""

from __future__ import annotations
