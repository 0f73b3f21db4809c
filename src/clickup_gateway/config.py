"""
Configuração do gateway via variáveis de ambiente.

Todas as constantes são lidas uma única vez na importação do módulo.
"""

import os
import sys
from typing import Optional

from loguru import logger

from clickup_gateway.errors import ReadOnlyModeError

# ============================================================================
# CONFIGURAÇÃO
# ============================================================================

API_BASE_URL = "https://api.clickup.com/api/v2"
API_TOKEN = os.environ.get("CLICKUP_API_TOKEN", "")
TEAM_ID = os.environ.get("CLICKUP_TEAM_ID", "")
REQUEST_TIMEOUT = float(os.environ.get("REQUEST_TIMEOUT", "65.0"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
LOG_FILE = os.environ.get("LOG_FILE", "")

# Rate limiting
RATE_LIMIT_PER_MINUTE = int(os.environ.get("RATE_LIMIT_PER_MINUTE", "100"))
RATE_LIMIT_WINDOW = 60  # janela em segundos
MAX_HEADER_SPACING = 5.0  # teto do espaçamento calculado a partir dos headers
MAX_QUEUE_SPACING = 10.0  # teto do espaçamento após 429 durante a fila

# Caches (fixos)
CACHE_TTL_VALIDATION = 300  # 5 min para validação e nome -> ID
CACHE_TTL_TASK_SUMMARIES = 60  # 1 min para o resumo global de tasks

# Modo operacional
READ_ONLY_MODE = os.environ.get("READ_ONLY_MODE", "false").lower() == "true"

# Flag para permitir startup sem token (útil para testes)
_PYTEST_RUNNING = "pytest" in sys.modules or "PYTEST_CURRENT_TEST" in os.environ
ALLOW_MISSING_TOKEN = os.environ.get("ALLOW_MISSING_TOKEN", "false").lower() == "true" or _PYTEST_RUNNING

REQUIRED_VARS = ["CLICKUP_API_TOKEN", "CLICKUP_TEAM_ID"]
OPTIONAL_VARS = [
    "REQUEST_TIMEOUT",
    "RATE_LIMIT_PER_MINUTE",
    "LOG_LEVEL",
    "LOG_FILE",
    "READ_ONLY_MODE",
    "ALLOW_MISSING_TOKEN",
]


def validate_config() -> None:
    """
    Valida configuração no startup. Fail-fast para variáveis obrigatórias.

    Raises:
        EnvironmentError: Se variável obrigatória não está configurada

    Note:
        Configure ALLOW_MISSING_TOKEN=true para testes sem token real.
    """
    missing = [var for var in REQUIRED_VARS if not os.environ.get(var)]

    if missing and not ALLOW_MISSING_TOKEN:
        error_msg = f"Variáveis de ambiente obrigatórias não configuradas: {', '.join(missing)}"
        logger.error(error_msg)
        raise EnvironmentError(error_msg)
    elif missing:
        logger.warning(f"Variáveis não configuradas (permitido por ALLOW_MISSING_TOKEN): {', '.join(missing)}")

    # Warning para desconhecidas (possível typo)
    env_vars = {k for k in os.environ.keys() if k.startswith("CLICKUP_") or k in OPTIONAL_VARS}
    unknown = env_vars - set(REQUIRED_VARS + OPTIONAL_VARS)
    for var in sorted(unknown):
        logger.warning(f"Variável desconhecida ignorada (possível typo?): {var}")

    if RATE_LIMIT_PER_MINUTE <= 0:
        raise EnvironmentError("RATE_LIMIT_PER_MINUTE deve ser maior que zero")

    mode = "READ_ONLY" if READ_ONLY_MODE else "READ_WRITE"
    logger.info(f"Configuração validada | Modo: {mode} | Limite: {RATE_LIMIT_PER_MINUTE} req/min")


def check_write_permission(operation: str, read_only: Optional[bool] = None) -> None:
    """
    Verifica se operações de escrita são permitidas.

    Args:
        operation: Nome da operação sendo executada
        read_only: Sobrescreve READ_ONLY_MODE (usado nos testes)

    Raises:
        ReadOnlyModeError: Se servidor está em modo read-only
    """
    if READ_ONLY_MODE if read_only is None else read_only:
        raise ReadOnlyModeError(
            f"Operação '{operation}' bloqueada: servidor em modo READ_ONLY. "
            f"Para habilitar escrita, configure READ_ONLY_MODE=false"
        )
