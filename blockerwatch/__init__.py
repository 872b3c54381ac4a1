"""blockerwatch - monitor Pi-hole and AdGuard Home appliances"""

__version__ = "1.0.0"
