"""
Shared model building blocks.
"""

from nestquarter.modules.shared.models import BaseModel

__all__ = ["BaseModel"]
