"""MachineBridge - expose remote virtual machines as smart-home door accessories."""

__version__ = "0.1.0"
