"""
Diamond Cutter - selector routing table builder and upgrade orchestrator
for EIP-2535 style proxies.
"""

__version__ = "1.0.0"
