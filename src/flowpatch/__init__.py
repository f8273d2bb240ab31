"""flowpatch: structured patch engine for agent flow graphs.

Applies path-addressed edit operations to a flow resource, provisions and
tears down the domain entities behind graph nodes, and reconciles the
editor's working copy with the persisted flow.
"""

__version__ = "0.4.0"
