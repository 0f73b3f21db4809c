"""
Façade de tasks: CRUD, mover, duplicar, dependências e links.

Operações derivadas:
- move = criar no destino + deletar o original (sem rollback: se o delete
  falhar, fica uma cópia duplicada, nunca perda de dados)
- duplicate = criar no destino (default: a própria list da task)
- update para done/closed/complete remove as dependências de bloqueio
  apontando para a task (best-effort, nunca falha o update)
"""

import asyncio
import time
from typing import Any, Callable, Dict, List, Optional, Union

from cachetools import TTLCache
from loguru import logger

from clickup_gateway import config
from clickup_gateway.client import ClickUpClient
from clickup_gateway.errors import ClickUpServiceError, ErrorCode, invalid_parameter
from clickup_gateway.hierarchy import WorkspaceService, fetch_list_tasks
from clickup_gateway.models import (
    TERMINAL_STATUSES,
    ClickUpList,
    DependencyType,
    Task,
    decode_task,
)
from clickup_gateway.observability import emit_event
from clickup_gateway.resolver import TaskResolver

# Tamanho dos lotes concorrentes em validate_tasks_exist
VALIDATION_BATCH_SIZE = 5

AssigneesUpdate = Union[List[int], Dict[str, List[int]]]


def is_terminal_status(status: Optional[str]) -> bool:
    return bool(status) and status.strip().lower() in TERMINAL_STATUSES


def extract_task_data(task: Task, name_override: Optional[str] = None) -> Dict[str, Any]:
    """Campos copiáveis de uma task (para mover/duplicar), sem o status."""
    data: Dict[str, Any] = {
        "name": name_override or task.name,
        "description": task.description or "",
        "assignees": [a.id for a in task.assignees],
    }
    if task.priority is not None:
        data["priority"] = task.priority.value
    if task.due_date:
        data["due_date"] = int(task.due_date)
    if task.start_date:
        data["start_date"] = int(task.start_date)
    return data


def match_status(status: Optional[str], available: List[str]) -> Optional[str]:
    """Retorna o status equivalente do destino (case-insensitive) ou None."""
    if not status:
        return None
    wanted = status.strip().lower()
    for candidate in available:
        if candidate.lower() == wanted:
            return candidate
    return None


class TaskService:
    """Operações de tasks sobre IDs resolvidos."""

    def __init__(
        self,
        client: ClickUpClient,
        workspace: WorkspaceService,
        resolver: TaskResolver,
        validation_ttl: float = config.CACHE_TTL_VALIDATION,
        timer: Callable[[], float] = time.monotonic
    ):
        self.client = client
        self.workspace = workspace
        self.resolver = resolver
        self.metrics = client.metrics
        # task_id -> Task (ou False quando a task não existe)
        self._task_validation: TTLCache = TTLCache(maxsize=500, ttl=validation_ttl, timer=timer)
        # list_id -> ClickUpList (ou False quando a list não existe)
        self._list_validation: TTLCache = TTLCache(maxsize=200, ttl=validation_ttl, timer=timer)

    # ========================================================================
    # LEITURA
    # ========================================================================

    async def get_task(self, task_id: str) -> Task:
        return await self.resolver.get_task(task_id)

    async def get_task_by_custom_id(self, custom_id: str, list_id: Optional[str] = None) -> Task:
        return await self.resolver.get_task_by_custom_id(custom_id, list_id)

    async def get_tasks(
        self,
        list_id: str,
        page: Optional[int] = None,
        include_closed: bool = True,
        subtasks: bool = True,
        statuses: Optional[List[str]] = None,
        assignees: Optional[List[str]] = None
    ) -> List[Task]:
        """Tasks de uma list; page=None percorre todas as páginas."""
        extra: Dict[str, Any] = {}
        if statuses:
            extra["statuses[]"] = statuses
        if assignees:
            extra["assignees[]"] = assignees
        return await fetch_list_tasks(
            self.client,
            list_id,
            include_closed=include_closed,
            subtasks=subtasks,
            page=page,
            extra_params=extra
        )

    # ========================================================================
    # ESCRITA
    # ========================================================================

    async def create_task(
        self,
        list_id: str,
        name: str,
        description: Optional[str] = None,
        status: Optional[str] = None,
        priority: Optional[int] = None,
        due_date: Optional[int] = None,
        start_date: Optional[int] = None,
        assignees: Optional[List[int]] = None,
        tags: Optional[List[str]] = None,
        parent: Optional[str] = None,
        notify_all: bool = True
    ) -> Task:
        json_data: Dict[str, Any] = {"name": name, "notify_all": notify_all}
        if description is not None:
            json_data["description"] = description
        if status:
            json_data["status"] = status
        if priority is not None:
            json_data["priority"] = priority
        if due_date:
            json_data["due_date"] = due_date
        if start_date:
            json_data["start_date"] = start_date
        if assignees:
            json_data["assignees"] = assignees
        if tags:
            json_data["tags"] = tags
        if parent:
            json_data["parent"] = parent
        return await self._create(list_id, json_data)

    async def _create(self, list_id: str, json_data: Dict[str, Any]) -> Task:
        logger.info(f"Criando task '{json_data.get('name')}' na list {list_id}")
        data = await self.client.post(f"/list/{list_id}/task", json_data=json_data)
        task = decode_task(data)
        self._task_validation[task.id] = task
        return task

    async def update_task(
        self,
        task_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        status: Optional[str] = None,
        priority: Optional[int] = None,
        due_date: Optional[int] = None,
        start_date: Optional[int] = None,
        assignees: Optional[AssigneesUpdate] = None,
        archived: Optional[bool] = None
    ) -> Task:
        """
        Atualização parcial: só os campos informados são enviados.

        Args:
            assignees: Lista completa de IDs (comparada com a atual para gerar
                {add, rem}) ou um dict {add, rem} já pronto
        """
        json_data: Dict[str, Any] = {}
        if name:
            json_data["name"] = name
        if description is not None:
            json_data["description"] = description
        if status:
            json_data["status"] = status
        if priority is not None:
            json_data["priority"] = priority
        if due_date:
            json_data["due_date"] = due_date
        if start_date:
            json_data["start_date"] = start_date
        if archived is not None:
            json_data["archived"] = archived

        if assignees is not None:
            if isinstance(assignees, dict):
                json_data["assignees"] = {
                    "add": list(assignees.get("add", [])),
                    "rem": list(assignees.get("rem", []))
                }
            else:
                current = await self.get_task(task_id)
                json_data["assignees"] = self._diff_assignees([a.id for a in current.assignees], assignees)

        if not json_data:
            raise invalid_parameter("Nenhum campo para atualizar", task_id=task_id)

        data = await self.client.put(f"/task/{task_id}", json_data=json_data)
        updated = decode_task(data)
        self._task_validation.pop(task_id, None)

        if is_terminal_status(status):
            removed = await self._remove_satisfied_dependencies(task_id, status)
            if removed:
                # Recarrega para refletir as dependências já removidas
                try:
                    updated = await self.resolver.get_task_by_id(task_id)
                except ClickUpServiceError as e:
                    logger.warning(f"Falha ao recarregar a task {task_id} após limpar dependências: {e}")

        return updated

    @staticmethod
    def _diff_assignees(current: List[Union[int, str]], wanted: List[int]) -> Dict[str, List]:
        current_ids = [str(c) for c in current]
        wanted_ids = [str(w) for w in wanted]
        return {
            "add": [w for w in wanted if str(w) not in current_ids],
            "rem": [c for c in current if str(c) not in wanted_ids]
        }

    async def _remove_satisfied_dependencies(self, task_id: str, status: str) -> int:
        """
        Remove as dependências em que outra task era bloqueada por esta.

        Cada remoção é independente; falhas são apenas logadas.

        Returns:
            Quantidade de dependências removidas
        """
        try:
            task = await self.resolver.get_task_by_id(task_id)
        except ClickUpServiceError as e:
            logger.warning(f"Falha ao limpar dependências da task {task_id}: {e}")
            return 0

        targets = [
            dep.task_id for dep in task.dependencies
            if dep.type == DependencyType.BLOCKING.value and dep.depends_on == task_id and dep.task_id
        ]
        if not targets:
            return 0

        logger.info(f"Task {task_id} concluída ({status}): removendo {len(targets)} dependência(s)")
        removed = 0
        for blocked_id in targets:
            try:
                await self.client.delete(
                    f"/task/{blocked_id}/dependency",
                    params={"depends_on": task_id, "dependency_of": blocked_id}
                )
                removed += 1
                emit_event(self.metrics, "dependency_removed", level="INFO", task_id=blocked_id, depends_on=task_id)
            except ClickUpServiceError as e:
                emit_event(
                    self.metrics,
                    "dependency_removal_failed",
                    level="WARNING",
                    task_id=blocked_id,
                    depends_on=task_id,
                    error=str(e)
                )
        return removed

    async def delete_task(self, task_id: str) -> None:
        logger.info(f"Deletando task {task_id}")
        await self.client.delete(f"/task/{task_id}")
        self._task_validation.pop(task_id, None)
        self.resolver.forget_task_id(task_id)

    # ========================================================================
    # MOVER / DUPLICAR
    # ========================================================================

    async def move_task(self, task_id: str, destination_list_id: str) -> Task:
        """
        Move a task: cria no destino e deleta o original.

        O status só é copiado se existir na list de destino.
        """
        start = time.monotonic()
        source, destination = await asyncio.gather(
            self.validate_task_exists(task_id),
            self.validate_list_exists(destination_list_id)
        )

        payload = await self._copy_payload(source, destination)
        new_task = await self._create(destination_list_id, payload)

        # Sem compensação: falha aqui deixa a task duplicada
        await self.delete_task(source.id)

        emit_event(
            self.metrics,
            "task_moved",
            level="INFO",
            task_id=source.id,
            new_task_id=new_task.id,
            destination_list_id=destination_list_id,
            elapsed_ms=round((time.monotonic() - start) * 1000)
        )
        return new_task

    async def duplicate_task(
        self,
        task_id: str,
        list_id: Optional[str] = None,
        name: Optional[str] = None
    ) -> Task:
        """Cria uma cópia da task (default: na mesma list)."""
        if list_id:
            source, destination = await asyncio.gather(
                self.validate_task_exists(task_id),
                self.validate_list_exists(list_id)
            )
        else:
            source = await self.validate_task_exists(task_id)
            if not source.list_id:
                raise invalid_parameter(f"Task {task_id} sem list de origem; informe a list de destino", task_id=task_id)
            destination = await self.validate_list_exists(source.list_id)

        payload = await self._copy_payload(source, destination, name_override=name)
        return await self._create(destination.id, payload)

    async def _copy_payload(self, source: Task, destination: ClickUpList, name_override: Optional[str] = None) -> Dict[str, Any]:
        payload = extract_task_data(source, name_override)
        if source.status_name:
            available = await self.get_list_statuses(destination)
            status = match_status(source.status_name, available)
            if status:
                payload["status"] = status
            else:
                logger.info(
                    f"Status '{source.status_name}' não existe na list {destination.id}; "
                    f"usando o status padrão do destino"
                )
        return payload

    async def get_list_statuses(self, lst: ClickUpList) -> List[str]:
        """Status da list; sem status no registro, deriva das tasks existentes."""
        if lst.statuses:
            return lst.status_names
        tasks = await fetch_list_tasks(self.client, lst.id, page=0)
        return list(dict.fromkeys(t.status_name for t in tasks if t.status_name))

    # ========================================================================
    # VALIDAÇÃO (CACHE 5 MIN)
    # ========================================================================

    async def validate_task_exists(self, task_id: str) -> Task:
        cached = self._task_validation.get(task_id)
        if cached is not None:
            emit_event(self.metrics, "cache_hit", cache="task_validation", task_id=task_id)
            if cached is False:
                raise ClickUpServiceError(f"Task {task_id} não existe", ErrorCode.NOT_FOUND, context={"task_id": task_id})
            return cached
        emit_event(self.metrics, "cache_miss", cache="task_validation", task_id=task_id)

        try:
            task = await self.get_task(task_id)
        except ClickUpServiceError as e:
            if e.code == ErrorCode.NOT_FOUND:
                self._task_validation[task_id] = False
            raise
        self._task_validation[task_id] = task
        return task

    async def validate_tasks_exist(self, task_ids: List[str]) -> Dict[str, Task]:
        """Valida várias tasks: cache primeiro, o resto em lotes concorrentes de 5."""
        results: Dict[str, Task] = {}
        to_fetch: List[str] = []
        for task_id in task_ids:
            cached = self._task_validation.get(task_id)
            if cached:
                results[task_id] = cached
            else:
                to_fetch.append(task_id)

        for i in range(0, len(to_fetch), VALIDATION_BATCH_SIZE):
            batch = to_fetch[i:i + VALIDATION_BATCH_SIZE]
            tasks = await asyncio.gather(*(self.get_task(task_id) for task_id in batch))
            for task_id, task in zip(batch, tasks):
                self._task_validation[task_id] = task
                results[task_id] = task

        return results

    async def validate_list_exists(self, list_id: str) -> ClickUpList:
        cached = self._list_validation.get(list_id)
        if cached is not None:
            emit_event(self.metrics, "cache_hit", cache="list_validation", list_id=list_id)
            if cached is False:
                raise ClickUpServiceError(f"List {list_id} não existe", ErrorCode.NOT_FOUND, context={"list_id": list_id})
            return cached
        emit_event(self.metrics, "cache_miss", cache="list_validation", list_id=list_id)

        try:
            lst = await self.workspace.get_list(list_id)
        except ClickUpServiceError as e:
            if e.code == ErrorCode.NOT_FOUND:
                self._list_validation[list_id] = False
            raise
        self._list_validation[list_id] = lst
        return lst

    # ========================================================================
    # DEPENDÊNCIAS E LINKS
    # ========================================================================

    async def add_dependency(self, task_id: str, other_task_id: str, type: int = DependencyType.WAITING_ON.value) -> None:
        """
        Cria uma dependência.

        type 0: task_id espera other_task_id; type 1: task_id bloqueia other_task_id.
        """
        body = {"depends_on": other_task_id} if type == DependencyType.WAITING_ON.value else {"dependency_of": other_task_id}
        await self.client.post(f"/task/{task_id}/dependency", json_data=body)
        self._task_validation.pop(task_id, None)

    async def remove_dependency(self, task_id: str, other_task_id: str, type: int = DependencyType.WAITING_ON.value) -> None:
        params = {"depends_on": other_task_id} if type == DependencyType.WAITING_ON.value else {"dependency_of": other_task_id}
        await self.client.delete(f"/task/{task_id}/dependency", params=params)
        self._task_validation.pop(task_id, None)

    async def add_link(self, task_id: str, links_to: str) -> None:
        await self.client.post(f"/task/{task_id}/link/{links_to}")

    async def remove_link(self, task_id: str, links_to: str) -> None:
        await self.client.delete(f"/task/{task_id}/link/{links_to}")
