"""shiptrack: carrier discovery and shipment tracking resolution."""

__version__ = "0.1.0"
