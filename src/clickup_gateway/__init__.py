"""
ClickUp Gateway: acesso ao ClickUp por nomes, com rate limiting e desambiguação.
"""

from clickup_gateway.errors import (
    ClickUpError,
    ClickUpServiceError,
    ErrorCode,
    MultipleMatchesError,
    ReadOnlyModeError,
)
from clickup_gateway.gateway import ClickUpGateway

__version__ = "0.1.0"

__all__ = [
    "ClickUpGateway",
    "ClickUpError",
    "ClickUpServiceError",
    "ErrorCode",
    "MultipleMatchesError",
    "ReadOnlyModeError",
]
