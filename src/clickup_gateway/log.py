"""
Configuração do loguru e correlation ID por chamada de tool.
"""

import contextvars
import sys
import uuid
from typing import Any, Dict

from loguru import logger

from clickup_gateway import config

# ============================================================================
# CORRELATION ID
# ============================================================================

# Variável de contexto para correlation ID
_correlation_id: contextvars.ContextVar[str] = contextvars.ContextVar(
    'correlation_id',
    default='no-cid'
)


def get_correlation_id() -> str:
    """Retorna o correlation ID atual."""
    return _correlation_id.get()


def set_new_correlation_id() -> str:
    """Gera e define um novo correlation ID."""
    new_id = str(uuid.uuid4())[:8]  # 8 chars é suficiente
    _correlation_id.set(new_id)
    return new_id


def _inject_correlation_id(record: Dict[str, Any]) -> None:
    record["extra"].setdefault("correlation_id", get_correlation_id())


# ============================================================================
# LOGGING CONFIGURATION
# ============================================================================

def configure_logging(level: str = config.LOG_LEVEL, log_file: str = config.LOG_FILE) -> None:
    """
    Reconfigura os sinks do loguru.

    stderr sempre; arquivo com rotação apenas se LOG_FILE estiver configurado.
    """
    logger.remove()
    logger.configure(patcher=_inject_correlation_id)

    logger.add(
        sys.stderr,
        level=level,
        format="<level>{level: <8}</level> | [{extra[correlation_id]}] <cyan>{name}</cyan>:<cyan>{line}</cyan> - {message}",
        colorize=True
    )

    if log_file:
        logger.add(
            log_file,
            level=level,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | [{extra[correlation_id]}] {name}:{line} - {message}",
            rotation="10 MB",      # Rotaciona quando arquivo atinge 10MB
            retention="7 days",    # Mantém logs por 7 dias
            compression="gz",      # Comprime arquivos antigos
            serialize=False,
            enqueue=True           # Thread-safe
        )
