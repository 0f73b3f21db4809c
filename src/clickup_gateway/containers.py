"""
Operações de lists, folders e spaces.

Todas aceitam ID ou nome; nomes são resolvidos pela árvore do workspace.
"""

from typing import Any, Dict, List, Optional

from loguru import logger

from clickup_gateway.client import ClickUpClient
from clickup_gateway.errors import invalid_parameter
from clickup_gateway.hierarchy import WorkspaceService
from clickup_gateway.models import ClickUpFolder, ClickUpList, ClickUpSpace, decode
from clickup_gateway.resolver import TaskResolver


class ListService:
    def __init__(self, client: ClickUpClient, workspace: WorkspaceService, resolver: TaskResolver):
        self.client = client
        self.workspace = workspace
        self.resolver = resolver

    async def get_list(self, list_id: Optional[str] = None, list_name: Optional[str] = None) -> ClickUpList:
        resolved = await self.resolver.resolve_list_id(list_id, list_name)
        return await self.workspace.get_list(resolved)

    async def get_lists(
        self,
        space_id: Optional[str] = None,
        space_name: Optional[str] = None,
        folder_id: Optional[str] = None,
        folder_name: Optional[str] = None
    ) -> List[ClickUpList]:
        """Lists de um folder, ou as lists sem folder de um space."""
        if folder_id or folder_name:
            resolved = await self.resolver.resolve_folder_id(folder_id, folder_name, space_id, space_name)
            return await self.workspace.get_folder_lists(resolved)
        resolved = await self.resolver.resolve_space_id(space_id, space_name)
        return await self.workspace.get_folderless_lists(resolved)

    async def create_list(
        self,
        name: str,
        space_id: Optional[str] = None,
        space_name: Optional[str] = None,
        folder_id: Optional[str] = None,
        folder_name: Optional[str] = None,
        content: Optional[str] = None,
        due_date: Optional[int] = None,
        priority: Optional[int] = None,
        status: Optional[str] = None
    ) -> ClickUpList:
        """Cria uma list dentro de um folder (se informado) ou direto no space."""
        json_data: Dict[str, Any] = {"name": name}
        if content:
            json_data["content"] = content
        if due_date:
            json_data["due_date"] = due_date
        if priority is not None:
            json_data["priority"] = priority
        if status:
            json_data["status"] = status

        if folder_id or folder_name:
            parent = await self.resolver.resolve_folder_id(folder_id, folder_name, space_id, space_name)
            path = f"/folder/{parent}/list"
        elif space_id or space_name:
            parent = await self.resolver.resolve_space_id(space_id, space_name)
            path = f"/space/{parent}/list"
        else:
            raise invalid_parameter("Informe o space ou o folder onde criar a list")

        logger.info(f"Criando list '{name}' em {path}")
        return decode(ClickUpList, await self.client.post(path, json_data=json_data), "list")

    async def update_list(
        self,
        list_id: Optional[str] = None,
        list_name: Optional[str] = None,
        name: Optional[str] = None,
        content: Optional[str] = None,
        due_date: Optional[int] = None,
        priority: Optional[int] = None
    ) -> ClickUpList:
        resolved = await self.resolver.resolve_list_id(list_id, list_name)
        json_data: Dict[str, Any] = {}
        if name:
            json_data["name"] = name
        if content is not None:
            json_data["content"] = content
        if due_date:
            json_data["due_date"] = due_date
        if priority is not None:
            json_data["priority"] = priority
        if not json_data:
            raise invalid_parameter("Nenhum campo para atualizar", list_id=resolved)
        return decode(ClickUpList, await self.client.put(f"/list/{resolved}", json_data=json_data), "list")

    async def delete_list(self, list_id: Optional[str] = None, list_name: Optional[str] = None) -> str:
        resolved = await self.resolver.resolve_list_id(list_id, list_name)
        logger.info(f"Deletando list {resolved}")
        await self.client.delete(f"/list/{resolved}")
        return resolved


class FolderService:
    def __init__(self, client: ClickUpClient, workspace: WorkspaceService, resolver: TaskResolver):
        self.client = client
        self.workspace = workspace
        self.resolver = resolver

    async def get_folder(
        self,
        folder_id: Optional[str] = None,
        folder_name: Optional[str] = None,
        space_id: Optional[str] = None,
        space_name: Optional[str] = None
    ) -> ClickUpFolder:
        resolved = await self.resolver.resolve_folder_id(folder_id, folder_name, space_id, space_name)
        return await self.workspace.get_folder(resolved)

    async def get_folders(self, space_id: Optional[str] = None, space_name: Optional[str] = None) -> List[ClickUpFolder]:
        resolved = await self.resolver.resolve_space_id(space_id, space_name)
        return await self.workspace.get_folders(resolved)

    async def create_folder(
        self,
        name: str,
        space_id: Optional[str] = None,
        space_name: Optional[str] = None,
        override_statuses: Optional[bool] = None
    ) -> ClickUpFolder:
        resolved = await self.resolver.resolve_space_id(space_id, space_name)
        json_data: Dict[str, Any] = {"name": name}
        if override_statuses is not None:
            json_data["override_statuses"] = override_statuses
        logger.info(f"Criando folder '{name}' no space {resolved}")
        return decode(ClickUpFolder, await self.client.post(f"/space/{resolved}/folder", json_data=json_data), "folder")

    async def update_folder(
        self,
        folder_id: Optional[str] = None,
        folder_name: Optional[str] = None,
        space_id: Optional[str] = None,
        space_name: Optional[str] = None,
        name: Optional[str] = None,
        override_statuses: Optional[bool] = None
    ) -> ClickUpFolder:
        resolved = await self.resolver.resolve_folder_id(folder_id, folder_name, space_id, space_name)
        json_data: Dict[str, Any] = {}
        if name:
            json_data["name"] = name
        if override_statuses is not None:
            json_data["override_statuses"] = override_statuses
        if not json_data:
            raise invalid_parameter("Nenhum campo para atualizar", folder_id=resolved)
        return decode(ClickUpFolder, await self.client.put(f"/folder/{resolved}", json_data=json_data), "folder")

    async def delete_folder(
        self,
        folder_id: Optional[str] = None,
        folder_name: Optional[str] = None,
        space_id: Optional[str] = None,
        space_name: Optional[str] = None
    ) -> str:
        resolved = await self.resolver.resolve_folder_id(folder_id, folder_name, space_id, space_name)
        logger.info(f"Deletando folder {resolved}")
        await self.client.delete(f"/folder/{resolved}")
        return resolved


class SpaceService:
    def __init__(self, workspace: WorkspaceService, resolver: TaskResolver):
        self.workspace = workspace
        self.resolver = resolver

    async def get_spaces(self, archived: bool = False) -> List[ClickUpSpace]:
        return await self.workspace.get_spaces(archived=archived)

    async def get_space(self, space_id: Optional[str] = None, space_name: Optional[str] = None) -> ClickUpSpace:
        resolved = await self.resolver.resolve_space_id(space_id, space_name)
        return await self.workspace.get_space(resolved)
