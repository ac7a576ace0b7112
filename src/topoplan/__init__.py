"""
Topoplan: compile declarative infrastructure topologies into ordered,
dependency-safe provisioning plans.
"""

__version__ = "0.1.0"
