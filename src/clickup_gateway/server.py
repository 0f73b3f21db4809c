#!/usr/bin/env python3
"""
ClickUp Gateway MCP Server
==========================
Expõe o ClickUp para agentes via MCP, aceitando nomes no lugar de IDs:
- Resolução de tasks, lists, folders e spaces por nome (com desambiguação)
- CRUD de tasks, mover, duplicar, dependências e links
- Gerenciamento de Lists, Folders e Spaces
- Rate limiting com fila e espaçamento adaptativo
"""

import json
from enum import Enum
from typing import Any, Dict, List, Optional

from loguru import logger
from mcp.server.fastmcp import FastMCP
from pydantic import BaseModel, ConfigDict, Field

from clickup_gateway import config
from clickup_gateway.config import check_write_permission, validate_config
from clickup_gateway.errors import invalid_parameter
from clickup_gateway.formatting import (
    format_error,
    format_hierarchy,
    format_task_markdown,
    format_tasks_compact,
    sanitize_output,
)
from clickup_gateway.gateway import ClickUpGateway
from clickup_gateway.log import configure_logging, set_new_correlation_id
from clickup_gateway.models import DependencyType
from clickup_gateway.observability import Metrics

# Inicializa o servidor MCP
mcp = FastMCP("clickup_gateway")

# Instância global de métricas
_metrics = Metrics()

_gateway: Optional[ClickUpGateway] = None


def get_gateway() -> ClickUpGateway:
    """Retorna o gateway do processo (criado a partir do ambiente no primeiro uso)."""
    global _gateway
    if _gateway is None:
        _gateway = ClickUpGateway.from_env(metrics=_metrics)
    return _gateway


def set_gateway(gateway: Optional[ClickUpGateway]) -> None:
    global _gateway
    _gateway = gateway


def _begin(tool_name: str) -> ClickUpGateway:
    cid = set_new_correlation_id()
    _metrics.record_tool_call(tool_name)
    logger.bind(correlation_id=cid).debug(f"Tool {tool_name}")
    return get_gateway()


def _fail(tool_name: str, action: str, error: Exception) -> str:
    _metrics.record_tool_error(tool_name)
    logger.warning(f"Tool {tool_name} falhou: {error}")
    return sanitize_output(format_error(action, error))


def _dump(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


# ============================================================================
# ENUMS E MODELOS DE INPUT
# ============================================================================

class OutputMode(str, Enum):
    """Modo de output para economia de tokens."""
    COMPACT = "compact"
    DETAILED = "detailed"
    JSON = "json"


class TaskRefInput(BaseModel):
    """Referência a uma task: ID, custom ID ou nome (com list opcional)."""
    model_config = ConfigDict(str_strip_whitespace=True)
    task_id: Optional[str] = Field(default=None, description="ID da task (custom IDs como 'DEV-42' são detectados)")
    custom_task_id: Optional[str] = Field(default=None, description="Custom ID explícito da task")
    task_name: Optional[str] = Field(default=None, description="Nome da task (alternativa ao ID)")
    list_id: Optional[str] = Field(default=None, description="ID da list para restringir a busca por nome")
    list_name: Optional[str] = Field(default=None, description="Nome da list para restringir a busca por nome")

    async def resolve(self, gateway: ClickUpGateway) -> str:
        return await gateway.resolver.resolve_task_id(
            task_id=self.task_id,
            custom_task_id=self.custom_task_id,
            task_name=self.task_name,
            list_id=self.list_id,
            list_name=self.list_name
        )


class GetHierarchyInput(BaseModel):
    """Input para a árvore do workspace."""
    model_config = ConfigDict(str_strip_whitespace=True)
    output_mode: OutputMode = Field(default=OutputMode.COMPACT, description="compact (árvore) ou json")


class FindTaskInput(TaskRefInput):
    """Input para encontrar task(s) por ID ou nome."""
    allow_multiple_matches: bool = Field(
        default=False,
        description="Retorna todos os matches em vez de falhar quando o nome é ambíguo"
    )
    output_mode: OutputMode = Field(default=OutputMode.DETAILED)


class GetTasksInput(BaseModel):
    """Input para listar tasks de uma list."""
    model_config = ConfigDict(str_strip_whitespace=True)
    list_id: Optional[str] = Field(default=None, description="ID da list")
    list_name: Optional[str] = Field(default=None, description="Nome da list (alternativa ao ID)")
    page: Optional[int] = Field(default=0, description="Página (começa em 0); null percorre todas", ge=0)
    include_closed: bool = Field(default=True, description="Incluir tasks fechadas")
    subtasks: bool = Field(default=True, description="Incluir subtasks")
    statuses: Optional[List[str]] = Field(default=None, description="Filtrar por status")
    output_mode: OutputMode = Field(default=OutputMode.COMPACT)


class CreateTaskInput(BaseModel):
    """Input para criar uma nova task."""
    model_config = ConfigDict(str_strip_whitespace=True)
    list_id: Optional[str] = Field(default=None, description="ID da list onde criar a task")
    list_name: Optional[str] = Field(default=None, description="Nome da list (alternativa ao ID)")
    name: str = Field(..., description="Nome da task", min_length=1, max_length=500)
    description: Optional[str] = Field(default=None, description="Descrição da task")
    status: Optional[str] = Field(default=None, description="Status inicial")
    priority: Optional[int] = Field(default=None, description="Prioridade (1=urgent, 2=high, 3=normal, 4=low)", ge=1, le=4)
    due_date: Optional[int] = Field(default=None, description="Due date (timestamp em ms)")
    start_date: Optional[int] = Field(default=None, description="Start date (timestamp em ms)")
    assignees: Optional[List[int]] = Field(default=None, description="IDs dos responsáveis")
    tags: Optional[List[str]] = Field(default=None, description="Tags da task")
    parent: Optional[str] = Field(default=None, description="ID da task pai (para subtask)")


class UpdateTaskInput(TaskRefInput):
    """Input para atualizar uma task existente."""
    name: Optional[str] = Field(default=None, description="Novo nome da task")
    description: Optional[str] = Field(default=None, description="Nova descrição")
    status: Optional[str] = Field(default=None, description="Novo status (done/closed/complete limpam dependências)")
    priority: Optional[int] = Field(default=None, description="Nova prioridade (1-4)", ge=1, le=4)
    due_date: Optional[int] = Field(default=None, description="Novo due date (timestamp ms)")
    start_date: Optional[int] = Field(default=None, description="Novo start date (timestamp ms)")
    assignees: Optional[List[int]] = Field(default=None, description="Lista completa de responsáveis (substitui a atual)")
    assignees_add: Optional[List[int]] = Field(default=None, description="IDs de responsáveis a adicionar")
    assignees_remove: Optional[List[int]] = Field(default=None, description="IDs de responsáveis a remover")
    archived: Optional[bool] = Field(default=None, description="Arquivar/desarquivar")


class MoveTaskInput(TaskRefInput):
    """Input para mover uma task para outra list."""
    destination_list_id: Optional[str] = Field(default=None, description="ID da list de destino")
    destination_list_name: Optional[str] = Field(default=None, description="Nome da list de destino")


class DuplicateTaskInput(TaskRefInput):
    """Input para duplicar uma task."""
    destination_list_id: Optional[str] = Field(default=None, description="ID da list de destino (default: a mesma)")
    destination_list_name: Optional[str] = Field(default=None, description="Nome da list de destino")
    new_name: Optional[str] = Field(default=None, description="Nome da cópia (opcional)")


class DependencyInput(TaskRefInput):
    """Input para criar/remover dependência entre tasks."""
    other_task_id: Optional[str] = Field(default=None, description="ID da outra task")
    other_task_name: Optional[str] = Field(default=None, description="Nome da outra task")
    other_list_id: Optional[str] = Field(default=None, description="List da outra task, para desambiguar o nome")
    other_list_name: Optional[str] = Field(default=None, description="Nome da list da outra task (alternativa ao ID)")
    dependency_type: int = Field(
        default=DependencyType.WAITING_ON.value,
        description="0 = a task espera a outra; 1 = a task bloqueia a outra",
        ge=0,
        le=1
    )


class TaskLinkInput(TaskRefInput):
    """Input para criar/remover link entre tasks."""
    links_to: str = Field(..., description="ID da task a linkar", min_length=1)


class SpaceRefInput(BaseModel):
    """Input com referência a um space."""
    model_config = ConfigDict(str_strip_whitespace=True)
    space_id: Optional[str] = Field(default=None, description="ID do space")
    space_name: Optional[str] = Field(default=None, description="Nome do space (alternativa ao ID)")
    output_mode: OutputMode = Field(default=OutputMode.COMPACT)


class GetSpacesInput(BaseModel):
    """Input para listar spaces do workspace."""
    model_config = ConfigDict(str_strip_whitespace=True)
    archived: bool = Field(default=False, description="Incluir spaces arquivados")
    output_mode: OutputMode = Field(default=OutputMode.COMPACT)


class FolderRefInput(BaseModel):
    """Input com referência a um folder."""
    model_config = ConfigDict(str_strip_whitespace=True)
    folder_id: Optional[str] = Field(default=None, description="ID do folder")
    folder_name: Optional[str] = Field(default=None, description="Nome do folder (alternativa ao ID)")
    space_id: Optional[str] = Field(default=None, description="ID do space (restringe a busca por nome)")
    space_name: Optional[str] = Field(default=None, description="Nome do space (restringe a busca por nome)")


class CreateFolderInput(BaseModel):
    """Input para criar um folder."""
    model_config = ConfigDict(str_strip_whitespace=True)
    name: str = Field(..., description="Nome do folder", min_length=1)
    space_id: Optional[str] = Field(default=None, description="ID do space")
    space_name: Optional[str] = Field(default=None, description="Nome do space")
    override_statuses: Optional[bool] = Field(default=None, description="Usar status próprios no folder")


class UpdateFolderInput(FolderRefInput):
    """Input para atualizar um folder."""
    name: Optional[str] = Field(default=None, description="Novo nome")
    override_statuses: Optional[bool] = Field(default=None, description="Usar status próprios no folder")


class ListRefInput(BaseModel):
    """Input com referência a uma list."""
    model_config = ConfigDict(str_strip_whitespace=True)
    list_id: Optional[str] = Field(default=None, description="ID da list")
    list_name: Optional[str] = Field(default=None, description="Nome da list (alternativa ao ID)")


class GetListsInput(BaseModel):
    """Input para listar lists de um folder ou as lists sem folder de um space."""
    model_config = ConfigDict(str_strip_whitespace=True)
    space_id: Optional[str] = Field(default=None, description="ID do space (lists sem folder)")
    space_name: Optional[str] = Field(default=None, description="Nome do space")
    folder_id: Optional[str] = Field(default=None, description="ID do folder")
    folder_name: Optional[str] = Field(default=None, description="Nome do folder")
    output_mode: OutputMode = Field(default=OutputMode.COMPACT)


class CreateListInput(BaseModel):
    """Input para criar uma nova list."""
    model_config = ConfigDict(str_strip_whitespace=True)
    name: str = Field(..., description="Nome da list", min_length=1)
    space_id: Optional[str] = Field(default=None, description="ID do space (list sem folder)")
    space_name: Optional[str] = Field(default=None, description="Nome do space")
    folder_id: Optional[str] = Field(default=None, description="ID do folder")
    folder_name: Optional[str] = Field(default=None, description="Nome do folder")
    content: Optional[str] = Field(default=None, description="Descrição da list")
    due_date: Optional[int] = Field(default=None, description="Due date (timestamp ms)")
    priority: Optional[int] = Field(default=None, description="Prioridade (1-4)", ge=1, le=4)
    status: Optional[str] = Field(default=None, description="Status (cor) da list")


class UpdateListInput(ListRefInput):
    """Input para atualizar uma list."""
    name: Optional[str] = Field(default=None, description="Novo nome")
    content: Optional[str] = Field(default=None, description="Nova descrição")
    due_date: Optional[int] = Field(default=None, description="Novo due date (timestamp ms)")
    priority: Optional[int] = Field(default=None, description="Nova prioridade (1-4)", ge=1, le=4)


class GetMetricsInput(BaseModel):
    """Input para métricas do servidor."""
    model_config = ConfigDict(str_strip_whitespace=True)
    output_mode: OutputMode = Field(
        default=OutputMode.DETAILED,
        description="Modo de output: compact (resumo), detailed (completo), json (raw)"
    )


# ============================================================================
# TOOLS - HIERARQUIA
# ============================================================================

@mcp.tool(
    name="clickup_get_workspace_hierarchy",
    annotations={
        "title": "Hierarquia do Workspace",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False
    }
)
async def get_workspace_hierarchy(params: GetHierarchyInput) -> str:
    """
    Retorna a árvore completa do workspace (spaces, folders e lists) com IDs.

    Útil para descobrir nomes e IDs antes de outras operações.
    """
    try:
        gateway = _begin("get_workspace_hierarchy")
        tree = await gateway.workspace.get_hierarchy()

        if params.output_mode == OutputMode.JSON:
            return _dump([
                {"id": node.id, "name": node.name, "type": node.type.value, "path": node.path}
                for node in tree.iter_nodes()
            ])
        return sanitize_output(format_hierarchy(tree))
    except Exception as e:
        return _fail("get_workspace_hierarchy", "montar a hierarquia", e)


# ============================================================================
# TOOLS - TASKS
# ============================================================================

@mcp.tool(
    name="clickup_find_task",
    annotations={
        "title": "Encontrar Task",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False
    }
)
async def find_task(params: FindTaskInput) -> str:
    """
    Encontra uma task por ID, custom ID ou nome.

    Sem list, a busca por nome percorre todo o workspace. Se o nome for
    ambíguo entre lists diferentes, retorna os candidatos com o caminho
    completo; informe list_name ou habilite allow_multiple_matches.
    """
    try:
        gateway = _begin("find_task")
        result = await gateway.resolver.find_tasks(
            task_id=params.task_id,
            custom_task_id=params.custom_task_id,
            task_name=params.task_name,
            list_id=params.list_id,
            list_name=params.list_name,
            allow_multiple_matches=params.allow_multiple_matches
        )
        tasks = result if isinstance(result, list) else [result]

        if params.output_mode == OutputMode.JSON:
            return _dump([t.model_dump(by_alias=True, exclude_none=True) for t in tasks])
        if params.output_mode == OutputMode.COMPACT or len(tasks) > 1:
            return sanitize_output(format_tasks_compact(tasks))
        return sanitize_output(format_task_markdown(tasks[0]))
    except Exception as e:
        return _fail("find_task", "encontrar task", e)


@mcp.tool(
    name="clickup_get_task",
    annotations={
        "title": "Buscar Task Específica",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False
    }
)
async def get_task(params: TaskRefInput) -> str:
    """
    Busca detalhes completos de uma task (por ID, custom ID ou nome).
    """
    try:
        gateway = _begin("get_task")
        task_id = await params.resolve(gateway)
        task = await gateway.tasks.get_task(task_id)
        return sanitize_output(format_task_markdown(task))
    except Exception as e:
        return _fail("get_task", "buscar task", e)


@mcp.tool(
    name="clickup_get_tasks",
    annotations={
        "title": "Listar Tasks de uma List",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False
    }
)
async def get_tasks(params: GetTasksInput) -> str:
    """
    Lista tasks de uma list (por ID ou nome).

    Modos de output: compact (default), detailed, json.
    """
    try:
        gateway = _begin("get_tasks")
        list_id = await gateway.resolver.resolve_list_id(params.list_id, params.list_name)
        tasks = await gateway.tasks.get_tasks(
            list_id,
            page=params.page,
            include_closed=params.include_closed,
            subtasks=params.subtasks,
            statuses=params.statuses
        )

        if params.output_mode == OutputMode.JSON:
            return _dump([t.model_dump(by_alias=True, exclude_none=True) for t in tasks])
        if params.output_mode == OutputMode.DETAILED:
            if not tasks:
                return "Nenhuma task encontrada."
            return sanitize_output("\n\n".join(format_task_markdown(t) for t in tasks))
        return sanitize_output(format_tasks_compact(tasks))
    except Exception as e:
        return _fail("get_tasks", "listar tasks", e)


@mcp.tool(
    name="clickup_create_task",
    annotations={
        "title": "Criar Task",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": False,
        "openWorldHint": False
    }
)
async def create_task(params: CreateTaskInput) -> str:
    """
    Cria uma nova task em uma list (por ID ou nome).
    """
    try:
        check_write_permission("create_task")
        gateway = _begin("create_task")
        list_id = await gateway.resolver.resolve_list_id(params.list_id, params.list_name)
        task = await gateway.tasks.create_task(
            list_id,
            params.name,
            description=params.description,
            status=params.status,
            priority=params.priority,
            due_date=params.due_date,
            start_date=params.start_date,
            assignees=params.assignees,
            tags=params.tags,
            parent=params.parent
        )
        return f"✅ Task '{task.name}' criada com sucesso!\n- **ID:** `{task.id}`\n- **URL:** {task.url or 'N/A'}"
    except Exception as e:
        return _fail("create_task", "criar task", e)


@mcp.tool(
    name="clickup_update_task",
    annotations={
        "title": "Atualizar Task",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False
    }
)
async def update_task(params: UpdateTaskInput) -> str:
    """
    Atualiza uma task existente (só os campos informados).

    Ao mudar o status para done/closed/complete, as dependências em que a
    task bloqueava outras são removidas automaticamente.
    """
    try:
        check_write_permission("update_task")
        gateway = _begin("update_task")
        task_id = await params.resolve(gateway)

        assignees: Any = None
        if params.assignees is not None:
            assignees = params.assignees
        elif params.assignees_add or params.assignees_remove:
            assignees = {"add": params.assignees_add or [], "rem": params.assignees_remove or []}

        task = await gateway.tasks.update_task(
            task_id,
            name=params.name,
            description=params.description,
            status=params.status,
            priority=params.priority,
            due_date=params.due_date,
            start_date=params.start_date,
            assignees=assignees,
            archived=params.archived
        )
        return f"✅ Task '{task.name}' atualizada com sucesso!\n- **Status:** {task.status_name or 'N/A'}"
    except Exception as e:
        return _fail("update_task", "atualizar task", e)


@mcp.tool(
    name="clickup_delete_task",
    annotations={
        "title": "Deletar Task",
        "readOnlyHint": False,
        "destructiveHint": True,
        "idempotentHint": True,
        "openWorldHint": False
    }
)
async def delete_task(params: TaskRefInput) -> str:
    """
    Deleta uma task. ATENÇÃO: Esta ação é irreversível!
    """
    try:
        check_write_permission("delete_task")
        gateway = _begin("delete_task")
        task_id = await params.resolve(gateway)
        await gateway.tasks.delete_task(task_id)
        return f"✅ Task `{task_id}` deletada com sucesso!"
    except Exception as e:
        return _fail("delete_task", "deletar task", e)


@mcp.tool(
    name="clickup_move_task",
    annotations={
        "title": "Mover Task",
        "readOnlyHint": False,
        "destructiveHint": True,
        "idempotentHint": False,
        "openWorldHint": False
    }
)
async def move_task(params: MoveTaskInput) -> str:
    """
    Move uma task para outra list.

    A task é recriada no destino (novo ID) e a original é deletada. O status
    só é mantido se existir na list de destino.
    """
    try:
        check_write_permission("move_task")
        gateway = _begin("move_task")
        task_id = await params.resolve(gateway)
        destination = await gateway.resolver.resolve_list_id(params.destination_list_id, params.destination_list_name)
        task = await gateway.tasks.move_task(task_id, destination)
        return (
            f"✅ Task movida com sucesso!\n- **Novo ID:** `{task.id}`\n"
            f"- **Status:** {task.status_name or 'N/A'}\n- **URL:** {task.url or 'N/A'}"
        )
    except Exception as e:
        return _fail("move_task", "mover task", e)


@mcp.tool(
    name="clickup_duplicate_task",
    annotations={
        "title": "Duplicar Task",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": False,
        "openWorldHint": False
    }
)
async def duplicate_task(params: DuplicateTaskInput) -> str:
    """
    Cria uma cópia de uma task (na mesma list ou em outra).
    """
    try:
        check_write_permission("duplicate_task")
        gateway = _begin("duplicate_task")
        task_id = await params.resolve(gateway)
        destination = None
        if params.destination_list_id or params.destination_list_name:
            destination = await gateway.resolver.resolve_list_id(params.destination_list_id, params.destination_list_name)
        task = await gateway.tasks.duplicate_task(task_id, destination, name=params.new_name)
        return f"✅ Task duplicada com sucesso!\n- **Nova ID:** `{task.id}`\n- **Nome:** {task.name}\n- **URL:** {task.url or 'N/A'}"
    except Exception as e:
        return _fail("duplicate_task", "duplicar task", e)


# ============================================================================
# TOOLS - DEPENDÊNCIAS E LINKS
# ============================================================================

async def _resolve_other(gateway: ClickUpGateway, params: DependencyInput) -> str:
    if not params.other_task_id and not params.other_task_name:
        raise invalid_parameter("Informe other_task_id ou other_task_name")
    return await gateway.resolver.resolve_task_id(
        task_id=params.other_task_id,
        task_name=params.other_task_name,
        list_id=params.other_list_id,
        list_name=params.other_list_name
    )


@mcp.tool(
    name="clickup_add_dependency",
    annotations={
        "title": "Adicionar Dependência",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False
    }
)
async def add_dependency(params: DependencyInput) -> str:
    """
    Cria uma dependência entre duas tasks.

    dependency_type 0: a task espera a outra. 1: a task bloqueia a outra.
    """
    try:
        check_write_permission("add_dependency")
        gateway = _begin("add_dependency")
        task_id = await params.resolve(gateway)
        other_id = await _resolve_other(gateway, params)
        await gateway.tasks.add_dependency(task_id, other_id, params.dependency_type)
        relation = "espera" if params.dependency_type == DependencyType.WAITING_ON.value else "bloqueia"
        return f"✅ Dependência criada: `{task_id}` {relation} `{other_id}`"
    except Exception as e:
        return _fail("add_dependency", "adicionar dependência", e)


@mcp.tool(
    name="clickup_remove_dependency",
    annotations={
        "title": "Remover Dependência",
        "readOnlyHint": False,
        "destructiveHint": True,
        "idempotentHint": True,
        "openWorldHint": False
    }
)
async def remove_dependency(params: DependencyInput) -> str:
    """
    Remove uma dependência entre duas tasks.
    """
    try:
        check_write_permission("remove_dependency")
        gateway = _begin("remove_dependency")
        task_id = await params.resolve(gateway)
        other_id = await _resolve_other(gateway, params)
        await gateway.tasks.remove_dependency(task_id, other_id, params.dependency_type)
        return f"✅ Dependência entre `{task_id}` e `{other_id}` removida"
    except Exception as e:
        return _fail("remove_dependency", "remover dependência", e)


@mcp.tool(
    name="clickup_add_task_link",
    annotations={
        "title": "Linkar Tasks",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False
    }
)
async def add_task_link(params: TaskLinkInput) -> str:
    """Cria um link entre duas tasks."""
    try:
        check_write_permission("add_task_link")
        gateway = _begin("add_task_link")
        task_id = await params.resolve(gateway)
        await gateway.tasks.add_link(task_id, params.links_to)
        return f"✅ Link criado: `{task_id}` ↔ `{params.links_to}`"
    except Exception as e:
        return _fail("add_task_link", "linkar tasks", e)


@mcp.tool(
    name="clickup_remove_task_link",
    annotations={
        "title": "Remover Link entre Tasks",
        "readOnlyHint": False,
        "destructiveHint": True,
        "idempotentHint": True,
        "openWorldHint": False
    }
)
async def remove_task_link(params: TaskLinkInput) -> str:
    """Remove o link entre duas tasks."""
    try:
        check_write_permission("remove_task_link")
        gateway = _begin("remove_task_link")
        task_id = await params.resolve(gateway)
        await gateway.tasks.remove_link(task_id, params.links_to)
        return f"✅ Link entre `{task_id}` e `{params.links_to}` removido"
    except Exception as e:
        return _fail("remove_task_link", "remover link", e)


# ============================================================================
# TOOLS - SPACES
# ============================================================================

@mcp.tool(
    name="clickup_get_spaces",
    annotations={
        "title": "Listar Spaces",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False
    }
)
async def get_spaces(params: GetSpacesInput) -> str:
    """
    Lista todos os spaces do workspace.

    Modos de output: compact (default), detailed, json.
    """
    try:
        gateway = _begin("get_spaces")
        spaces = await gateway.spaces.get_spaces(archived=params.archived)

        if params.output_mode == OutputMode.JSON:
            return _dump([s.model_dump(exclude_none=True) for s in spaces])

        lines = [f"**{len(spaces)} spaces:**\n"]
        for i, space in enumerate(spaces, 1):
            priv = "privado" if space.private else "público"
            line = f"{i}. {space.name} | {priv} | `{space.id}`"
            if params.output_mode == OutputMode.DETAILED and space.statuses:
                line += f"\n   Status: {', '.join(s.status for s in space.statuses)}"
            lines.append(line)
        return sanitize_output("\n".join(lines))
    except Exception as e:
        return _fail("get_spaces", "listar spaces", e)


@mcp.tool(
    name="clickup_get_space",
    annotations={
        "title": "Detalhes do Space",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False
    }
)
async def get_space(params: SpaceRefInput) -> str:
    """Detalhes de um space (por ID ou nome)."""
    try:
        gateway = _begin("get_space")
        space = await gateway.spaces.get_space(params.space_id, params.space_name)

        if params.output_mode == OutputMode.JSON:
            return _dump(space.model_dump(exclude_none=True))

        lines = [f"## {space.name}", f"- **ID:** `{space.id}`"]
        lines.append(f"- **Privado:** {'Sim' if space.private else 'Não'}")
        if space.statuses:
            lines.append(f"- **Status disponíveis:** {', '.join(s.status for s in space.statuses)}")
        return sanitize_output("\n".join(lines))
    except Exception as e:
        return _fail("get_space", "buscar space", e)


# ============================================================================
# TOOLS - FOLDERS
# ============================================================================

@mcp.tool(
    name="clickup_get_folders",
    annotations={
        "title": "Listar Folders",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False
    }
)
async def get_folders(params: SpaceRefInput) -> str:
    """
    Lista os folders de um space (por ID ou nome).
    """
    try:
        gateway = _begin("get_folders")
        folders = await gateway.folders.get_folders(params.space_id, params.space_name)

        if params.output_mode == OutputMode.JSON:
            return _dump([f.model_dump(exclude_none=True) for f in folders])

        lines = [f"**{len(folders)} folders:**\n"]
        for i, folder in enumerate(folders, 1):
            lists_count = len(folder.lists) if folder.lists is not None else "?"
            lines.append(f"{i}. {folder.name} | {lists_count} lists | `{folder.id}`")
        return sanitize_output("\n".join(lines))
    except Exception as e:
        return _fail("get_folders", "listar folders", e)


@mcp.tool(
    name="clickup_create_folder",
    annotations={
        "title": "Criar Folder",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": False,
        "openWorldHint": False
    }
)
async def create_folder(params: CreateFolderInput) -> str:
    """Cria um folder em um space (por ID ou nome)."""
    try:
        check_write_permission("create_folder")
        gateway = _begin("create_folder")
        folder = await gateway.folders.create_folder(
            params.name,
            space_id=params.space_id,
            space_name=params.space_name,
            override_statuses=params.override_statuses
        )
        return f"✅ Folder '{folder.name}' criado com sucesso!\n- **ID:** `{folder.id}`"
    except Exception as e:
        return _fail("create_folder", "criar folder", e)


@mcp.tool(
    name="clickup_update_folder",
    annotations={
        "title": "Atualizar Folder",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False
    }
)
async def update_folder(params: UpdateFolderInput) -> str:
    """Atualiza um folder (por ID ou nome)."""
    try:
        check_write_permission("update_folder")
        gateway = _begin("update_folder")
        folder = await gateway.folders.update_folder(
            params.folder_id,
            params.folder_name,
            params.space_id,
            params.space_name,
            name=params.name,
            override_statuses=params.override_statuses
        )
        return f"✅ Folder '{folder.name}' atualizado com sucesso!"
    except Exception as e:
        return _fail("update_folder", "atualizar folder", e)


@mcp.tool(
    name="clickup_delete_folder",
    annotations={
        "title": "Deletar Folder",
        "readOnlyHint": False,
        "destructiveHint": True,
        "idempotentHint": True,
        "openWorldHint": False
    }
)
async def delete_folder(params: FolderRefInput) -> str:
    """
    Deleta um folder e todas as suas lists. ATENÇÃO: irreversível!
    """
    try:
        check_write_permission("delete_folder")
        gateway = _begin("delete_folder")
        folder_id = await gateway.folders.delete_folder(
            params.folder_id, params.folder_name, params.space_id, params.space_name
        )
        return f"✅ Folder `{folder_id}` deletado com sucesso!"
    except Exception as e:
        return _fail("delete_folder", "deletar folder", e)


# ============================================================================
# TOOLS - LISTS
# ============================================================================

@mcp.tool(
    name="clickup_get_lists",
    annotations={
        "title": "Listar Lists",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False
    }
)
async def get_lists(params: GetListsInput) -> str:
    """
    Lista as lists de um folder ou as lists sem folder de um space.
    """
    try:
        gateway = _begin("get_lists")
        lists = await gateway.lists.get_lists(
            space_id=params.space_id,
            space_name=params.space_name,
            folder_id=params.folder_id,
            folder_name=params.folder_name
        )

        if params.output_mode == OutputMode.JSON:
            return _dump([lst.model_dump(exclude_none=True) for lst in lists])

        lines = [f"**{len(lists)} lists:**\n"]
        for i, lst in enumerate(lists, 1):
            count = lst.task_count if lst.task_count is not None else "?"
            lines.append(f"{i}. {lst.name} | {count} tasks | `{lst.id}`")
        return sanitize_output("\n".join(lines))
    except Exception as e:
        return _fail("get_lists", "listar lists", e)


@mcp.tool(
    name="clickup_get_list",
    annotations={
        "title": "Detalhes da List",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False
    }
)
async def get_list(params: ListRefInput) -> str:
    """Detalhes de uma list (por ID ou nome), incluindo os status disponíveis."""
    try:
        gateway = _begin("get_list")
        lst = await gateway.lists.get_list(params.list_id, params.list_name)
        lines = [f"## {lst.name}", f"- **ID:** `{lst.id}`"]
        if lst.folder and lst.folder.name:
            lines.append(f"- **Folder:** {lst.folder.name}")
        if lst.space and lst.space.name:
            lines.append(f"- **Space:** {lst.space.name}")
        if lst.statuses:
            lines.append(f"- **Status disponíveis:** {', '.join(lst.status_names)}")
        if lst.content:
            lines.append(f"\n{lst.content}")
        return sanitize_output("\n".join(lines))
    except Exception as e:
        return _fail("get_list", "buscar list", e)


@mcp.tool(
    name="clickup_create_list",
    annotations={
        "title": "Criar List",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": False,
        "openWorldHint": False
    }
)
async def create_list(params: CreateListInput) -> str:
    """Cria uma list em um folder ou diretamente em um space."""
    try:
        check_write_permission("create_list")
        gateway = _begin("create_list")
        lst = await gateway.lists.create_list(
            params.name,
            space_id=params.space_id,
            space_name=params.space_name,
            folder_id=params.folder_id,
            folder_name=params.folder_name,
            content=params.content,
            due_date=params.due_date,
            priority=params.priority,
            status=params.status
        )
        return f"✅ List '{lst.name}' criada com sucesso!\n- **ID:** `{lst.id}`"
    except Exception as e:
        return _fail("create_list", "criar list", e)


@mcp.tool(
    name="clickup_update_list",
    annotations={
        "title": "Atualizar List",
        "readOnlyHint": False,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False
    }
)
async def update_list(params: UpdateListInput) -> str:
    """Atualiza uma list (por ID ou nome)."""
    try:
        check_write_permission("update_list")
        gateway = _begin("update_list")
        lst = await gateway.lists.update_list(
            params.list_id,
            params.list_name,
            name=params.name,
            content=params.content,
            due_date=params.due_date,
            priority=params.priority
        )
        return f"✅ List '{lst.name}' atualizada com sucesso!"
    except Exception as e:
        return _fail("update_list", "atualizar list", e)


@mcp.tool(
    name="clickup_delete_list",
    annotations={
        "title": "Deletar List",
        "readOnlyHint": False,
        "destructiveHint": True,
        "idempotentHint": True,
        "openWorldHint": False
    }
)
async def delete_list(params: ListRefInput) -> str:
    """
    Deleta uma list e todas as suas tasks. ATENÇÃO: irreversível!
    """
    try:
        check_write_permission("delete_list")
        gateway = _begin("delete_list")
        list_id = await gateway.lists.delete_list(params.list_id, params.list_name)
        return f"✅ List `{list_id}` deletada com sucesso!"
    except Exception as e:
        return _fail("delete_list", "deletar list", e)


# ============================================================================
# TOOLS - MÉTRICAS
# ============================================================================

@mcp.tool(
    name="clickup_get_metrics",
    annotations={
        "title": "Métricas do Servidor",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False
    }
)
async def get_metrics(params: GetMetricsInput) -> str:
    """
    Retorna métricas de diagnóstico do servidor MCP.

    Inclui: chamadas por tool, cache hit rate, API calls, rate limit e fila.

    Modos de output: compact (resumo), detailed (default), json.
    """
    cid = set_new_correlation_id()
    logger.bind(correlation_id=cid).info("Gerando métricas")

    summary: Dict[str, Any] = _metrics.get_summary()
    operation_mode = "READ_ONLY" if config.READ_ONLY_MODE else "READ_WRITE"
    summary["operation_mode"] = operation_mode
    if _gateway is not None:
        limiter = _gateway.rate_limiter
        summary["rate_limiter"] = {
            "limit_per_minute": limiter.max_requests,
            "current_spacing_seconds": round(limiter.current_spacing, 3),
            "queue_active": limiter.queue_active,
            "queue_depth": limiter.queue_depth
        }

    if params.output_mode == OutputMode.JSON:
        return _dump(summary)

    mode_icon = "🔒" if config.READ_ONLY_MODE else "✏️"
    if params.output_mode == OutputMode.COMPACT:
        return (
            f"**Métricas** | "
            f"Modo: {mode_icon} {operation_mode} | "
            f"API: {summary['api_calls']} calls | "
            f"Cache: {summary['cache_hit_rate']:.0%} hit | "
            f"429: {summary['rate_limit_hits']}"
        )

    # DETAILED
    lines = ["# Métricas do Servidor\n"]

    lines.append("## Configuração")
    lines.append(f"- **Modo de Operação:** {mode_icon} {operation_mode}")
    lines.append(f"- **Limite:** {config.RATE_LIMIT_PER_MINUTE} req/min")

    lines.append("\n## Resumo")
    lines.append(f"- **API Calls:** {summary['api_calls']}")
    lines.append(f"- **Cache Hits:** {summary['cache_hits']}")
    lines.append(f"- **Cache Misses:** {summary['cache_misses']}")
    lines.append(f"- **Cache Hit Rate:** {summary['cache_hit_rate']:.1%}")
    lines.append(f"- **Rate limit (429):** {summary['rate_limit_hits']}")

    latency = summary["latency_ms"]
    if latency.get("samples"):
        lines.append(f"- **Latência:** p50 {latency['p50']:.0f}ms | p95 {latency['p95']:.0f}ms | p99 {latency['p99']:.0f}ms")

    if "rate_limiter" in summary:
        rl = summary["rate_limiter"]
        lines.append("\n## Rate Limiter")
        lines.append(f"- **Espaçamento atual:** {rl['current_spacing_seconds']}s")
        lines.append(f"- **Fila:** {'ativa' if rl['queue_active'] else 'inativa'} ({rl['queue_depth']} itens)")

    if summary['tool_calls']:
        lines.append("\n## Chamadas por Tool")
        for tool, count in sorted(summary['tool_calls'].items(), key=lambda x: -x[1]):
            lines.append(f"- {tool}: {count}")

    if summary['tool_errors']:
        lines.append("\n## Erros por Tool")
        for tool, count in sorted(summary['tool_errors'].items(), key=lambda x: -x[1]):
            lines.append(f"- {tool}: {count}")

    if summary['events']:
        lines.append("\n## Eventos")
        for event, count in sorted(summary['events'].items(), key=lambda x: -x[1]):
            lines.append(f"- {event}: {count}")

    return "\n".join(lines)


# ============================================================================
# MAIN
# ============================================================================

def main() -> None:
    configure_logging()
    validate_config()
    mcp.run()


if __name__ == "__main__":
    main()
