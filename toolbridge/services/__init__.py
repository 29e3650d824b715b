"""
Services package for the tool bridge.

Contains the registration collaborator that turns compiled operations into
advertised tools.
"""

from toolbridge.services.tool_catalog import OperationSpec, ToolCatalog

__all__ = ["OperationSpec", "ToolCatalog"]
