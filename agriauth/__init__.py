"""
AgriLink authorization-and-audit engine.

Decides whether an authenticated actor may perform a privileged marketplace
operation and keeps an append-only trail of the operations that were carried
out.
"""

__version__ = "0.1.0"
