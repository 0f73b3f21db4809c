"""
Exceções e taxonomia de erros do gateway.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(str, Enum):
    """Classificação das falhas vindas do ClickUp (ou do próprio gateway)."""
    RATE_LIMIT = "rate_limit_exceeded"
    NOT_FOUND = "resource_not_found"
    UNAUTHORIZED = "unauthorized"
    VALIDATION = "validation_error"
    SERVER_ERROR = "server_error"
    NETWORK_ERROR = "network_error"
    WORKSPACE_ERROR = "workspace_error"
    INVALID_PARAMETER = "invalid_parameter"
    UNKNOWN = "unknown_error"


@dataclass
class RateLimitInfo:
    """Valores dos headers X-RateLimit-* de uma resposta."""
    limit: Optional[int] = None
    remaining: Optional[int] = None
    reset: Optional[float] = None  # epoch em segundos


class ClickUpError(Exception):
    """Exceção base para erros do gateway."""
    pass


class ConfigurationError(ClickUpError):
    """Erro de configuração (variáveis de ambiente, etc)."""
    pass


class ReadOnlyModeError(ClickUpError):
    """Erro quando operação de escrita é bloqueada em modo read-only."""
    pass


class ClickUpServiceError(ClickUpError):
    """
    Erro estruturado de uma operação contra o ClickUp.

    Attributes:
        code: Classificação (ErrorCode)
        data: Payload bruto do backend, para diagnóstico
        status: Status HTTP, quando houver
        context: IDs, nomes e escopo envolvidos na operação
        rate_limit: Headers de rate limit, presentes em erros 429
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN,
        data: Any = None,
        status: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
        rate_limit: Optional[RateLimitInfo] = None
    ):
        self.message = message
        self.code = code
        self.data = data
        self.status = status
        self.context = context or {}
        self.rate_limit = rate_limit
        super().__init__(message)

    @property
    def is_rate_limit(self) -> bool:
        return self.code == ErrorCode.RATE_LIMIT

    def __str__(self) -> str:
        if self.status:
            return f"[{self.status}] {self.message}"
        return self.message


class MultipleMatchesError(ClickUpServiceError):
    """Mais de uma task corresponde igualmente bem ao nome informado."""

    def __init__(self, message: str, candidates: List[Dict[str, Any]], context: Optional[Dict[str, Any]] = None):
        self.candidates = candidates
        super().__init__(message, ErrorCode.INVALID_PARAMETER, context=context)


def not_found(message: str, **context: Any) -> ClickUpServiceError:
    """Atalho para erros NOT_FOUND de resolução por nome."""
    return ClickUpServiceError(message, ErrorCode.NOT_FOUND, context=context)


def invalid_parameter(message: str, **context: Any) -> ClickUpServiceError:
    return ClickUpServiceError(message, ErrorCode.INVALID_PARAMETER, context=context)
