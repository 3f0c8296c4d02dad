"""habittimer: segmented interval timers for daily habits."""

__version__ = "0.1.0"
