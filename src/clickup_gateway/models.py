"""
Modelos de dados do ClickUp (camada de decode).

As respostas do ClickUp variam bastante na presença de campos; em vez de
acessar dicts especulativamente em cada chamada, toda resposta passa por
decode_* e vira um modelo pydantic com campos opcionais explícitos.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from clickup_gateway.errors import ClickUpServiceError, ErrorCode

ModelT = TypeVar("ModelT", bound=BaseModel)

# Status que disparam a limpeza de dependências
TERMINAL_STATUSES = {"done", "closed", "complete"}


class Priority(int, Enum):
    """Níveis de prioridade do ClickUp."""
    URGENT = 1
    HIGH = 2
    NORMAL = 3
    LOW = 4


class DependencyType(int, Enum):
    """0 = task_id espera depends_on; 1 = task_id bloqueia depends_on."""
    WAITING_ON = 0
    BLOCKING = 1


def _epoch_to_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


class _Record(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class EntityRef(_Record):
    """Referência {id, name} embutida em tasks (list, folder, space)."""
    id: str
    name: Optional[str] = None
    hidden: Optional[bool] = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v):
        return str(v) if v is not None else v


class TaskStatus(_Record):
    status: str
    color: Optional[str] = None
    type: Optional[str] = None
    orderindex: Optional[int] = None


class Assignee(_Record):
    id: Union[int, str]
    username: Optional[str] = None
    email: Optional[str] = None

    @property
    def name(self) -> str:
        return self.username or self.email or str(self.id)


class TaskDependency(_Record):
    task_id: str
    depends_on: str
    type: int = DependencyType.WAITING_ON.value


class Task(_Record):
    """Task do ClickUp já decodificada."""
    id: str
    custom_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[Priority] = None
    due_date: Optional[str] = None
    start_date: Optional[str] = None
    date_created: Optional[str] = None
    date_updated: Optional[str] = None
    assignees: List[Assignee] = Field(default_factory=list)
    list_ref: Optional[EntityRef] = Field(default=None, alias="list")
    folder: Optional[EntityRef] = None
    space: Optional[EntityRef] = None
    dependencies: List[TaskDependency] = Field(default_factory=list)
    parent: Optional[str] = None
    url: Optional[str] = None

    @field_validator("priority", mode="before")
    @classmethod
    def _decode_priority(cls, v):
        # ClickUp envia {"id": "2", "priority": "high", ...}; fora de 1..4 vira None
        if isinstance(v, dict):
            v = v.get("id")
        try:
            value = int(v)
        except (TypeError, ValueError):
            return None
        return value if 1 <= value <= 4 else None

    @field_validator("due_date", "start_date", "date_created", "date_updated", mode="before")
    @classmethod
    def _decode_epoch(cls, v):
        return _epoch_to_str(v)

    @field_validator("folder", mode="before")
    @classmethod
    def _decode_folder(cls, v):
        # Lists sem folder vêm com {"hidden": true} e sem id
        if isinstance(v, dict) and not v.get("id"):
            return None
        return v

    @property
    def status_name(self) -> Optional[str]:
        return self.status.status if self.status else None

    @property
    def list_id(self) -> Optional[str]:
        return self.list_ref.id if self.list_ref else None

    @property
    def updated_at(self) -> int:
        """date_updated como inteiro (0 se ausente), para ordenação."""
        try:
            return int(self.date_updated) if self.date_updated else 0
        except ValueError:
            return 0



class ClickUpList(_Record):
    id: str
    name: str
    content: Optional[str] = None
    status: Optional[Dict[str, Any]] = None
    statuses: List[TaskStatus] = Field(default_factory=list)
    folder: Optional[EntityRef] = None
    space: Optional[EntityRef] = None
    task_count: Optional[int] = None
    archived: Optional[bool] = None

    @field_validator("folder", mode="before")
    @classmethod
    def _decode_folder(cls, v):
        if isinstance(v, dict) and not v.get("id"):
            return None
        return v

    @property
    def status_names(self) -> List[str]:
        return [s.status for s in self.statuses]


class ClickUpFolder(_Record):
    id: str
    name: str
    hidden: Optional[bool] = None
    override_statuses: Optional[bool] = None
    space: Optional[EntityRef] = None
    # None = a resposta não trouxe as lists embutidas
    lists: Optional[List[ClickUpList]] = None


class ClickUpSpace(_Record):
    id: str
    name: str
    private: Optional[bool] = None
    statuses: List[TaskStatus] = Field(default_factory=list)


# ============================================================================
# DECODE
# ============================================================================

def decode(model: Type[ModelT], payload: Any, what: str = "resposta") -> ModelT:
    """
    Converte um payload do ClickUp em modelo.

    Raises:
        ClickUpServiceError: UNKNOWN se o formato não for o esperado
    """
    if not isinstance(payload, dict):
        raise ClickUpServiceError(
            f"Formato inesperado em {what}: esperado objeto JSON, recebido {type(payload).__name__}",
            ErrorCode.UNKNOWN,
            data=payload
        )
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise ClickUpServiceError(
            f"Formato inesperado em {what}: {e.error_count()} campo(s) inválido(s)",
            ErrorCode.UNKNOWN,
            data=payload
        ) from e


def decode_many(model: Type[ModelT], payload: Any, key: str, what: str = "resposta") -> List[ModelT]:
    """Decodifica uma coleção no formato {key: [...]} (ou lista crua)."""
    if isinstance(payload, dict):
        items = payload.get(key, [])
    else:
        items = payload
    if not isinstance(items, list):
        raise ClickUpServiceError(
            f"Formato inesperado em {what}: '{key}' não é uma lista",
            ErrorCode.UNKNOWN,
            data=payload
        )
    return [decode(model, item, what) for item in items]


def decode_task(payload: Any) -> Task:
    return decode(Task, payload, "task")
