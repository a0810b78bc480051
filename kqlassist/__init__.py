"""
kqlassist

Natural-language to KQL assistant for Azure telemetry backends
(Application Insights, Log Analytics, Azure Data Explorer).
"""

__version__ = "0.1.0"
