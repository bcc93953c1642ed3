"""swarmcoord: filesystem-based work coordination for agent swarms."""

__version__ = "0.1.0"
