"""MCM Snapshot - credit-aware cached market snapshot service"""

__version__ = "1.0.0"
