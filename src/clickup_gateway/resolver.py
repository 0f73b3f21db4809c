"""
Resolução de nomes para IDs (tasks, lists, folders e spaces).

Ordem de resolução de tasks, cada etapa é fallback da anterior:
    1. ID direto (com detecção de custom ID, ex: "ABC-123")
    2. Cache nome -> ID (TTL de 5 min, chave = nome + list)
    3. Busca por nome dentro de uma list
    4. Busca global no workspace, com pontuação e desambiguação
"""

import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from cachetools import TTLCache
from loguru import logger

from clickup_gateway import config
from clickup_gateway.client import ClickUpClient
from clickup_gateway.errors import (
    ClickUpServiceError,
    ErrorCode,
    MultipleMatchesError,
    invalid_parameter,
    not_found,
)
from clickup_gateway.formatting import format_timestamp
from clickup_gateway.hierarchy import (
    PATH_SEPARATOR,
    TASKS_PAGE_SIZE,
    ListContext,
    NodeType,
    WorkspaceService,
    WorkspaceTree,
    fetch_list_tasks,
)
from clickup_gateway.matching import (
    EXACT_CLASS_THRESHOLD,
    SCORE_NONE,
    did_you_mean,
    match_quality_label,
    score_name,
)
from clickup_gateway.models import EntityRef, Task, decode_many, decode_task
from clickup_gateway.observability import emit_event

CUSTOM_ID_PATTERN = re.compile(r"^[A-Z]+-\d+$")

NameCacheKey = Tuple[str, Optional[str]]


def looks_like_custom_id(task_id: str) -> bool:
    return bool(task_id) and bool(CUSTOM_ID_PATTERN.match(task_id))


@dataclass
class TaskMatch:
    """Candidato pontuado de uma busca por nome."""
    task: Task
    score: int
    context: Optional[ListContext] = None

    @property
    def list_id(self) -> Optional[str]:
        if self.context is not None:
            return self.context.list_id
        return self.task.list_id

    @property
    def path(self) -> str:
        if self.context is not None:
            return f"{self.context.path}{PATH_SEPARATOR}{self.task.name}"
        parts = [
            self.task.space.name if self.task.space else None,
            self.task.folder.name if self.task.folder else None,
            self.task.list_ref.name if self.task.list_ref else None,
            self.task.name,
        ]
        return PATH_SEPARATOR.join(p for p in parts if p)

    def describe(self) -> Dict[str, Any]:
        return {
            "id": self.task.id,
            "name": self.task.name,
            "path": self.path,
            "date_updated": format_timestamp(self.task.date_updated) or "data desconhecida",
            "match_quality": match_quality_label(self.score),
            "score": self.score,
        }

    def with_context(self) -> Task:
        """A task com list/folder/space preenchidos a partir da árvore."""
        if self.context is None:
            return self.task
        ctx = self.context
        update: Dict[str, Any] = {"list_ref": EntityRef(id=ctx.list_id, name=ctx.list_name)}
        if ctx.folder_id:
            update["folder"] = EntityRef(id=ctx.folder_id, name=ctx.folder_name)
        if ctx.space_id:
            update["space"] = EntityRef(id=ctx.space_id, name=ctx.space_name)
        return self.task.model_copy(update=update)


def rank_matches(matches: List[TaskMatch]) -> List[TaskMatch]:
    """Ordena por score (desc) e, em empate, pela atualização mais recente."""
    return sorted(matches, key=lambda m: (m.score, m.task.updated_at), reverse=True)


class TaskResolver:
    """Resolve referências humanas de tasks e containers para IDs do ClickUp."""

    def __init__(
        self,
        client: ClickUpClient,
        workspace: WorkspaceService,
        name_cache_ttl: float = config.CACHE_TTL_VALIDATION,
        summaries_ttl: float = config.CACHE_TTL_TASK_SUMMARIES,
        timer: Callable[[], float] = time.monotonic
    ):
        self.client = client
        self.workspace = workspace
        self.team_id = workspace.team_id
        self.metrics = client.metrics
        self._name_cache: TTLCache = TTLCache(maxsize=1000, ttl=name_cache_ttl, timer=timer)
        self._summaries_cache: TTLCache = TTLCache(maxsize=1, ttl=summaries_ttl, timer=timer)

    # ========================================================================
    # CACHE NOME -> ID
    # ========================================================================

    def get_cached_task_id(self, task_name: str, list_id: Optional[str] = None) -> Optional[str]:
        task_id = self._name_cache.get((task_name, list_id))
        if task_id:
            emit_event(self.metrics, "cache_hit", cache="task_name", task_name=task_name, list_id=list_id, task_id=task_id)
        else:
            emit_event(self.metrics, "cache_miss", cache="task_name", task_name=task_name, list_id=list_id)
        return task_id

    def cache_task_id(self, task_name: str, task_id: str, list_id: Optional[str] = None) -> None:
        self._name_cache[(task_name, list_id)] = task_id
        logger.debug(f"Cache nome -> ID: '{task_name}' (list={list_id}) -> {task_id}")

    def forget_task_id(self, task_id: str) -> None:
        """Remove do cache todas as entradas que apontam para a task."""
        stale = [key for key, cached in list(self._name_cache.items()) if cached == task_id]
        for key in stale:
            self._name_cache.pop(key, None)

    # ========================================================================
    # BUSCA DIRETA POR ID
    # ========================================================================

    async def get_task_by_id(self, task_id: str) -> Task:
        data = await self.client.get(f"/task/{task_id}")
        return decode_task(data)

    async def get_task_by_custom_id(self, custom_id: str, list_id: Optional[str] = None) -> Task:
        """Busca uma task pelo custom ID (ex: "DEV-42")."""
        if list_id:
            logger.debug(f"list_id={list_id} ignorado na busca por custom ID {custom_id}")
        data = await self.client.get(
            f"/task/{custom_id}",
            params={"custom_task_ids": "true", "team_id": self.team_id}
        )
        return decode_task(data)

    async def get_task(self, task_id: str) -> Task:
        """
        Busca uma task por ID, detectando custom IDs.

        IDs no formato "ABC-123" são tentados primeiro como custom ID; se
        falhar, a busca é refeita como ID regular.
        """
        if looks_like_custom_id(task_id):
            try:
                return await self.get_task_by_custom_id(task_id)
            except ClickUpServiceError as e:
                if e.code == ErrorCode.RATE_LIMIT:
                    raise
                logger.info(f"Custom ID '{task_id}' não encontrado ({e.code.value}), tentando como ID regular")
        return await self.get_task_by_id(task_id)

    # ========================================================================
    # CONTAINERS (LIST / FOLDER / SPACE)
    # ========================================================================

    async def resolve_list_id(
        self,
        list_id: Optional[str] = None,
        list_name: Optional[str] = None,
        tree: Optional[WorkspaceTree] = None
    ) -> str:
        """
        Retorna o ID da list (direto ou resolvido pelo nome).

        Raises:
            ClickUpServiceError: NOT_FOUND com sugestões, INVALID_PARAMETER sem argumentos
        """
        if list_id:
            return list_id
        if not list_name:
            raise invalid_parameter("Informe list_id ou list_name")

        tree = tree or await self.workspace.get_hierarchy()
        match = tree.find_node_by_name_and_type(list_name, NodeType.LIST)
        if match is None:
            raise self._container_not_found("List", list_name, tree.names(NodeType.LIST))
        logger.debug(f"List '{list_name}' resolvida: {match.path} ({match.id})")
        return match.id

    async def resolve_space_id(self, space_id: Optional[str] = None, space_name: Optional[str] = None) -> str:
        if space_id:
            return space_id
        if not space_name:
            raise invalid_parameter("Informe space_id ou space_name")

        tree = await self.workspace.get_hierarchy()
        match = tree.find_node_by_name_and_type(space_name, NodeType.SPACE)
        if match is None:
            raise self._container_not_found("Space", space_name, tree.names(NodeType.SPACE))
        return match.id

    async def resolve_folder_id(
        self,
        folder_id: Optional[str] = None,
        folder_name: Optional[str] = None,
        space_id: Optional[str] = None,
        space_name: Optional[str] = None
    ) -> str:
        """Resolve um folder pelo nome; space_id/space_name restringem a busca a um space."""
        if folder_id:
            return folder_id
        if not folder_name:
            raise invalid_parameter("Informe folder_id ou folder_name")

        tree = await self.workspace.get_hierarchy()
        scope = None
        if space_id or space_name:
            space_match = (
                tree.find_node_by_id(space_id, NodeType.SPACE) if space_id
                else tree.find_node_by_name_and_type(space_name, NodeType.SPACE)
            )
            if space_match is None:
                raise self._container_not_found("Space", space_id or space_name, tree.names(NodeType.SPACE))
            scope = space_match.id

        target = folder_name.strip().lower()
        candidates = [
            node for node in tree.iter_nodes(NodeType.FOLDER)
            if scope is None or (node.parent is not None and node.parent.id == scope)
        ]
        for node in candidates:
            if node.name.lower() == target:
                return node.id
        raise self._container_not_found("Folder", folder_name, [n.name for n in candidates])

    def _container_not_found(self, kind: str, name: str, names: List[str]) -> ClickUpServiceError:
        message = f"{kind} \"{name}\" não encontrado(a) no workspace."
        hint = did_you_mean(name, names)
        if hint:
            message = f"{message} {hint}"
        return not_found(message, kind=kind.lower(), name=name)

    # ========================================================================
    # BUSCA DE TASKS
    # ========================================================================

    async def find_tasks(
        self,
        task_id: Optional[str] = None,
        custom_task_id: Optional[str] = None,
        task_name: Optional[str] = None,
        list_id: Optional[str] = None,
        list_name: Optional[str] = None,
        allow_multiple_matches: bool = False
    ) -> Union[Task, List[Task]]:
        """
        Encontra task(s) por ID, custom ID ou nome.

        Args:
            task_id: ID direto (custom IDs "ABC-123" são detectados)
            custom_task_id: Custom ID explícito
            task_name: Nome da task
            list_id: Restringe a busca por nome a uma list
            list_name: Idem, pelo nome da list
            allow_multiple_matches: Retorna todos os matches em vez de falhar na ambiguidade

        Returns:
            Uma Task, ou lista de Tasks ordenada se allow_multiple_matches

        Raises:
            MultipleMatchesError: Empate entre tasks de lists diferentes
            ClickUpServiceError: NOT_FOUND com o escopo pesquisado
        """
        logger.debug(
            f"find_tasks | task_id={task_id} custom_task_id={custom_task_id} "
            f"task_name={task_name} list_id={list_id} list_name={list_name} "
            f"allow_multiple={allow_multiple_matches}"
        )

        if task_id:
            return await self.get_task(task_id)

        if custom_task_id:
            return await self.get_task_by_custom_id(custom_task_id, list_id)

        if not task_name:
            raise invalid_parameter("Informe task_id, custom_task_id ou task_name")

        tree: Optional[WorkspaceTree] = None
        scoped_list_id = list_id
        if list_name and not list_id:
            tree = await self.workspace.get_hierarchy()
            scoped_list_id = await self.resolve_list_id(list_name=list_name, tree=tree)

        if not allow_multiple_matches:
            cached_id = self.get_cached_task_id(task_name, scoped_list_id)
            if cached_id:
                try:
                    return await self.get_task_by_id(cached_id)
                except ClickUpServiceError as e:
                    if e.code != ErrorCode.NOT_FOUND:
                        raise
                    # Task removida desde o cache: refaz a busca
                    self.forget_task_id(cached_id)

        if scoped_list_id:
            return await self._find_in_list(task_name, scoped_list_id, allow_multiple_matches)
        return await self._find_globally(task_name, allow_multiple_matches, tree)

    async def resolve_task_id(
        self,
        task_id: Optional[str] = None,
        custom_task_id: Optional[str] = None,
        task_name: Optional[str] = None,
        list_id: Optional[str] = None,
        list_name: Optional[str] = None
    ) -> str:
        """
        Resolve uma referência de task para o ID regular.

        Com o nome em cache, retorna sem nenhuma chamada à API.
        """
        if task_id and not looks_like_custom_id(task_id):
            return task_id
        if task_id or custom_task_id:
            task = await self.find_tasks(task_id=task_id, custom_task_id=custom_task_id)
            return task.id
        if not task_name:
            raise invalid_parameter("Informe task_id, custom_task_id ou task_name")

        scoped_list_id = list_id
        if list_name and not list_id:
            scoped_list_id = await self.resolve_list_id(list_name=list_name)

        cached_id = self.get_cached_task_id(task_name, scoped_list_id)
        if cached_id:
            return cached_id

        task = await self.find_tasks(task_name=task_name, list_id=scoped_list_id)
        return task.id

    async def _find_in_list(self, task_name: str, list_id: str, allow_multiple: bool) -> Union[Task, List[Task]]:
        try:
            tasks = await fetch_list_tasks(self.client, list_id)
        except ClickUpServiceError as e:
            if e.code != ErrorCode.NOT_FOUND:
                raise
            raise not_found(
                f"List {list_id} não encontrada ao buscar a task \"{task_name}\".",
                task_name=task_name,
                list_id=list_id,
                scope="list"
            ) from e
        matches = self._score(tasks, task_name)

        if not matches:
            message = f"Task \"{task_name}\" não encontrada na list {list_id}."
            hint = did_you_mean(task_name, [t.name for t in tasks])
            if hint:
                message = f"{message} {hint}"
            raise not_found(message, task_name=task_name, list_id=list_id)

        ranked = rank_matches(matches)
        if allow_multiple:
            return [m.task for m in ranked]

        best = self._select(task_name, ranked)
        self.cache_task_id(task_name, best.task.id, list_id)
        return best.task

    async def _find_globally(
        self,
        task_name: str,
        allow_multiple: bool,
        tree: Optional[WorkspaceTree] = None
    ) -> Union[Task, List[Task]]:
        tree = tree or await self.workspace.get_hierarchy()
        contexts = tree.list_context_map()
        summaries = await self.get_task_summaries(tree)

        matches = self._score(summaries, task_name, contexts)
        emit_event(
            self.metrics,
            "global_search",
            task_name=task_name,
            searched=len(summaries),
            matches=len(matches)
        )

        if not matches:
            message = f"Task \"{task_name}\" não encontrada em nenhuma list do workspace."
            hint = did_you_mean(task_name, [t.name for t in summaries])
            if hint:
                message = f"{message} {hint}"
            raise not_found(message, task_name=task_name, scope="workspace")

        ranked = rank_matches(matches)
        if allow_multiple:
            return [m.with_context() for m in ranked]

        best = self._select(task_name, ranked)
        self.cache_task_id(task_name, best.task.id, None)
        full = await self.get_task_by_id(best.task.id)
        return TaskMatch(task=full, score=best.score, context=best.context).with_context()

    def _score(
        self,
        tasks: List[Task],
        task_name: str,
        contexts: Optional[Dict[str, ListContext]] = None
    ) -> List[TaskMatch]:
        matches = []
        for task in tasks:
            score = score_name(task.name, task_name)
            if score > SCORE_NONE:
                context = contexts.get(task.list_id) if contexts and task.list_id else None
                matches.append(TaskMatch(task=task, score=score, context=context))
        return matches

    def _select(self, task_name: str, ranked: List[TaskMatch]) -> TaskMatch:
        """
        Aplica a política de desambiguação sobre candidatos já ordenados.

        - Um único candidato com score >= 80 vence os mais fracos.
        - Empate no topo dentro da mesma list: vence o mais recente.
        - Empate no topo entre lists diferentes: MultipleMatchesError.
        """
        exact_class = [m for m in ranked if m.score >= EXACT_CLASS_THRESHOLD]
        if len(exact_class) == 1:
            if len(ranked) > 1:
                emit_event(
                    self.metrics,
                    "disambiguation",
                    decision="single_exact_match",
                    task_name=task_name,
                    task_id=exact_class[0].task.id,
                    score=exact_class[0].score,
                    discarded=len(ranked) - 1
                )
            return exact_class[0]

        top_score = ranked[0].score
        tied = [m for m in ranked if m.score == top_score]
        if len(tied) == 1:
            return tied[0]

        if len({m.list_id for m in tied}) == 1:
            emit_event(
                self.metrics,
                "disambiguation",
                decision="most_recent_in_list",
                task_name=task_name,
                task_id=tied[0].task.id,
                candidates=len(tied)
            )
            return tied[0]

        candidates = [m.describe() for m in tied]
        emit_event(self.metrics, "disambiguation", level="INFO", decision="ambiguous", task_name=task_name, candidates=len(tied))
        lines = [
            f"- \"{c['name']}\" em {c['path']} | atualizada em {c['date_updated']} | "
            f"qualidade: {c['match_quality']} ({c['score']}/100) | `{c['id']}`"
            for c in candidates
        ]
        raise MultipleMatchesError(
            f"Várias tasks encontradas com o nome \"{task_name}\":\n" + "\n".join(lines) +
            "\n\nInforme list_name/list_id para desambiguar, use o task_id "
            "ou habilite allow_multiple_matches.",
            candidates=candidates,
            context={"task_name": task_name}
        )

    # ========================================================================
    # RESUMO GLOBAL DE TASKS
    # ========================================================================

    async def get_task_summaries(self, tree: Optional[WorkspaceTree] = None) -> List[Task]:
        """
        Tasks de todo o workspace (cache de 60s).

        Usa o endpoint de tasks do team; se o endpoint for rejeitado, cai para
        a varredura list a list da árvore.
        """
        cached = self._summaries_cache.get("summaries")
        if cached is not None:
            emit_event(self.metrics, "cache_hit", cache="task_summaries", tasks=len(cached))
            return cached
        emit_event(self.metrics, "cache_miss", cache="task_summaries")

        try:
            summaries = await self._fetch_team_tasks()
        except ClickUpServiceError as e:
            if e.code not in (ErrorCode.NOT_FOUND, ErrorCode.VALIDATION):
                raise
            emit_event(self.metrics, "global_search_fallback", level="WARNING", reason=e.code.value)
            summaries = await self.workspace.get_all_tasks_in_workspace(tree)

        self._summaries_cache["summaries"] = summaries
        return summaries

    async def _fetch_team_tasks(self) -> List[Task]:
        params = {
            "include_closed": "true",
            "subtasks": "true",
        }
        page = 0
        tasks: List[Task] = []
        while True:
            data = await self.client.get(f"/team/{self.team_id}/task", params={**params, "page": page})
            batch = decode_many(Task, data, "tasks", "tasks do workspace")
            tasks.extend(batch)
            last_page = data.get("last_page", True) if isinstance(data, dict) else True
            if last_page or len(batch) < TASKS_PAGE_SIZE:
                break
            page += 1
        return tasks
