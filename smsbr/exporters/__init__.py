"""
smsbr/exporters — persistence of a loaded conversation index.
"""

from smsbr.exporters.sqlite_exporter import export

__all__ = ["export"]
