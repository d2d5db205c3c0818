"""
Derived statistics computed from stored kill events.
"""

from .build_rules import BUILD_RULES, BuildRules
from .builds import BuildAggregator

__all__ = ["BUILD_RULES", "BuildAggregator", "BuildRules"]
