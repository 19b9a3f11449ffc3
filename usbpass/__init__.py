"""Live USB passthrough from a Linux host to running libvirt VMs."""

__version__ = '0.1.0'
