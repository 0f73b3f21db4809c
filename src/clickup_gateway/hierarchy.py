"""
Árvore do workspace (workspace > space > folder > list).

A árvore é reconstruída por completo a cada get_hierarchy(); não há
mutação incremental. Cada nó guarda uma referência fraca para o pai,
usada apenas para reconstruir o caminho "Space > Folder > List".
"""

import asyncio
import weakref
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from loguru import logger

from clickup_gateway.client import ClickUpClient
from clickup_gateway.errors import ClickUpServiceError, ErrorCode
from clickup_gateway.models import (
    ClickUpFolder,
    ClickUpList,
    ClickUpSpace,
    Task,
    decode,
    decode_many,
)
from clickup_gateway.observability import emit_event

PATH_SEPARATOR = " > "
ROOT_NAME = "Workspace"


class NodeType(str, Enum):
    WORKSPACE = "workspace"
    SPACE = "space"
    FOLDER = "folder"
    LIST = "list"


class WorkspaceNode:
    """Nó da árvore. Os filhos pertencem ao nó; o pai é uma referência fraca."""

    def __init__(self, id: str, name: str, type: NodeType, data: Any = None):
        self.id = str(id)
        self.name = name
        self.type = type
        self.data = data
        self.children: List["WorkspaceNode"] = []
        self._parent: Optional[weakref.ReferenceType] = None

    def __repr__(self) -> str:
        return f"WorkspaceNode({self.type.value}, {self.name!r}, id={self.id})"

    @property
    def parent(self) -> Optional["WorkspaceNode"]:
        return self._parent() if self._parent is not None else None

    def add_child(self, child: "WorkspaceNode") -> "WorkspaceNode":
        child._parent = weakref.ref(self)
        self.children.append(child)
        return child

    def ancestors(self) -> List["WorkspaceNode"]:
        """Ancestrais do mais externo ao mais interno, sem a raiz do workspace."""
        chain = []
        node = self.parent
        while node is not None and node.type != NodeType.WORKSPACE:
            chain.append(node)
            node = node.parent
        return list(reversed(chain))

    @property
    def path(self) -> str:
        """Caminho "Space > Folder > List" (sem o segmento do workspace)."""
        return PATH_SEPARATOR.join([n.name for n in self.ancestors()] + [self.name])

    def walk(self) -> Iterator["WorkspaceNode"]:
        """Percorre em profundidade, na ordem em que a API devolveu os itens."""
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass
class NodeMatch:
    node: WorkspaceNode
    path: str

    @property
    def id(self) -> str:
        return self.node.id


@dataclass
class ListContext:
    """Contexto de ancestrais de uma list, para enriquecer resultados da busca global."""
    list_id: str
    list_name: str
    space_id: Optional[str] = None
    space_name: Optional[str] = None
    folder_id: Optional[str] = None
    folder_name: Optional[str] = None

    @property
    def path(self) -> str:
        parts = [self.space_name, self.folder_name, self.list_name]
        return PATH_SEPARATOR.join(p for p in parts if p)


class WorkspaceTree:
    """Árvore completa de um workspace; uma única raiz do tipo workspace."""

    def __init__(self, workspace_id: str, name: str = ROOT_NAME):
        self.root = WorkspaceNode(workspace_id, name, NodeType.WORKSPACE)

    def iter_nodes(self, type: Optional[NodeType] = None) -> Iterator[WorkspaceNode]:
        for node in self.root.walk():
            if node.type == NodeType.WORKSPACE:
                continue
            if type is None or node.type == type:
                yield node

    def find_node_by_name_and_type(self, name: str, type: NodeType) -> Optional[NodeMatch]:
        """
        Busca um nó por nome (case-insensitive, exato) e tipo.

        Primeira ocorrência em profundidade vence; a ordem é a da resposta
        da API, não alfabética.
        """
        target = name.strip().lower()
        for node in self.iter_nodes(type):
            if node.name.lower() == target:
                return NodeMatch(node=node, path=node.path)
        return None

    def find_node_by_id(self, node_id: str, type: Optional[NodeType] = None) -> Optional[WorkspaceNode]:
        for node in self.iter_nodes(type):
            if node.id == str(node_id):
                return node
        return None

    def names(self, type: NodeType) -> List[str]:
        return [node.name for node in self.iter_nodes(type)]

    def list_context_map(self) -> Dict[str, ListContext]:
        """Mapa list_id -> contexto (space, folder, list), montado em uma só passada."""
        contexts: Dict[str, ListContext] = {}
        for node in self.iter_nodes(NodeType.LIST):
            ctx = ListContext(list_id=node.id, list_name=node.name)
            for ancestor in node.ancestors():
                if ancestor.type == NodeType.SPACE:
                    ctx.space_id, ctx.space_name = ancestor.id, ancestor.name
                elif ancestor.type == NodeType.FOLDER:
                    ctx.folder_id, ctx.folder_name = ancestor.id, ancestor.name
            contexts[node.id] = ctx
        return contexts


# Páginas de tasks da API do ClickUp têm no máximo 100 itens
TASKS_PAGE_SIZE = 100


async def fetch_list_tasks(
    client: ClickUpClient,
    list_id: str,
    include_closed: bool = True,
    subtasks: bool = True,
    page: Optional[int] = None,
    extra_params: Optional[Dict[str, Any]] = None
) -> List[Task]:
    """
    Busca tasks de uma list.

    Args:
        page: Página específica; None percorre todas as páginas
    """
    params: Dict[str, Any] = {
        "include_closed": str(include_closed).lower(),
        "subtasks": str(subtasks).lower(),
    }
    if extra_params:
        params.update(extra_params)

    current = page if page is not None else 0
    tasks: List[Task] = []
    while True:
        data = await client.get(f"/list/{list_id}/task", params={**params, "page": current})
        batch = decode_many(Task, data, "tasks", "tasks da list")
        tasks.extend(batch)
        last_page = data.get("last_page", True) if isinstance(data, dict) else True
        if page is not None or last_page or len(batch) < TASKS_PAGE_SIZE:
            break
        current += 1
    return tasks


class WorkspaceService:
    """Leitura de spaces, folders e lists e montagem da árvore do workspace."""

    def __init__(self, client: ClickUpClient, team_id: Optional[str] = None):
        self.client = client
        self.team_id = team_id or client.team_id

    # ------------------------------------------------------------------------
    # Leitura direta
    # ------------------------------------------------------------------------

    async def get_spaces(self, archived: bool = False) -> List[ClickUpSpace]:
        data = await self.client.get(f"/team/{self.team_id}/space", params={"archived": str(archived).lower()})
        return decode_many(ClickUpSpace, data, "spaces", "spaces")

    async def get_space(self, space_id: str) -> ClickUpSpace:
        return decode(ClickUpSpace, await self.client.get(f"/space/{space_id}"), "space")

    async def get_folders(self, space_id: str, archived: bool = False) -> List[ClickUpFolder]:
        data = await self.client.get(f"/space/{space_id}/folder", params={"archived": str(archived).lower()})
        return decode_many(ClickUpFolder, data, "folders", "folders")

    async def get_folder(self, folder_id: str) -> ClickUpFolder:
        return decode(ClickUpFolder, await self.client.get(f"/folder/{folder_id}"), "folder")

    async def get_folder_lists(self, folder_id: str, archived: bool = False) -> List[ClickUpList]:
        data = await self.client.get(f"/folder/{folder_id}/list", params={"archived": str(archived).lower()})
        return decode_many(ClickUpList, data, "lists", "lists do folder")

    async def get_folderless_lists(self, space_id: str, archived: bool = False) -> List[ClickUpList]:
        data = await self.client.get(f"/space/{space_id}/list", params={"archived": str(archived).lower()})
        return decode_many(ClickUpList, data, "lists", "lists do space")

    async def get_list(self, list_id: str) -> ClickUpList:
        return decode(ClickUpList, await self.client.get(f"/list/{list_id}"), "list")

    # ------------------------------------------------------------------------
    # Árvore
    # ------------------------------------------------------------------------

    async def _build_space(self, space: ClickUpSpace) -> WorkspaceNode:
        space_node = WorkspaceNode(space.id, space.name, NodeType.SPACE, data=space)
        lists, folders = await asyncio.gather(
            self.get_folderless_lists(space.id),
            self.get_folders(space.id)
        )

        for lst in lists:
            space_node.add_child(WorkspaceNode(lst.id, lst.name, NodeType.LIST, data=lst))

        for folder in folders:
            folder_node = space_node.add_child(WorkspaceNode(folder.id, folder.name, NodeType.FOLDER, data=folder))
            folder_lists = folder.lists
            if folder_lists is None:
                folder_lists = await self.get_folder_lists(folder.id)
            for lst in folder_lists:
                folder_node.add_child(WorkspaceNode(lst.id, lst.name, NodeType.LIST, data=lst))

        return space_node

    async def get_hierarchy(self) -> WorkspaceTree:
        """
        Monta a árvore completa do workspace (sempre sem cache).

        Raises:
            ClickUpServiceError: WORKSPACE_ERROR se o team_id não está definido
        """
        if not self.team_id:
            raise ClickUpServiceError(
                "CLICKUP_TEAM_ID não configurado: impossível montar a hierarquia",
                ErrorCode.WORKSPACE_ERROR
            )

        spaces = await self.get_spaces()
        space_nodes = await asyncio.gather(*(self._build_space(space) for space in spaces))

        tree = WorkspaceTree(self.team_id)
        for node in space_nodes:
            tree.root.add_child(node)

        emit_event(
            self.client.metrics,
            "hierarchy_built",
            spaces=len(space_nodes),
            lists=sum(1 for _ in tree.iter_nodes(NodeType.LIST))
        )
        return tree

    async def find_node(self, name: str, type: NodeType) -> Optional[NodeMatch]:
        tree = await self.get_hierarchy()
        return tree.find_node_by_name_and_type(name, type)

    async def find_space_id_by_name(self, name: str) -> Optional[str]:
        match = await self.find_node(name, NodeType.SPACE)
        return match.id if match else None

    async def find_folder_id_by_name(self, name: str) -> Optional[NodeMatch]:
        return await self.find_node(name, NodeType.FOLDER)

    async def find_list_id_by_name(self, name: str) -> Optional[NodeMatch]:
        return await self.find_node(name, NodeType.LIST)

    async def get_all_tasks_in_workspace(self, tree: Optional[WorkspaceTree] = None) -> List[Task]:
        """
        Busca as tasks de todas as lists da árvore.

        Caro: uma requisição (ou mais, com paginação) por list. Usado apenas
        como fallback da busca global por nome.
        """
        tree = tree or await self.get_hierarchy()
        all_tasks: List[Task] = []
        for node in tree.iter_nodes(NodeType.LIST):
            all_tasks.extend(await fetch_list_tasks(self.client, node.id))
        logger.debug(f"Varredura completa do workspace: {len(all_tasks)} tasks")
        return all_tasks
