"""List virtual machines, datastores and networks of an ESXi host or vCenter."""

__version__ = "0.1.0"
