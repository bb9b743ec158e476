"""Agent Foundry shared models, protocols, constants, and utilities.

This package provides the foundational layer for the foundry
orchestrator and the persistence package.  It has no dependency on
either of them.
"""

__version__ = "1.0.0"
