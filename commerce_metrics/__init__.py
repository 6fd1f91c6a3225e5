"""
E-Commerce Metrics Engine

Turns marketplace transactions, inventory and purchase data into monthly
period snapshots, compares them against stored history and raises
threshold alerts.
"""

__version__ = "1.0.0"
