"""junos-reconcile - declarative reconciliation of Junos configuration over NETCONF."""
__version__ = "0.1.0"
