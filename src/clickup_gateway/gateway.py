"""
Raiz de composição: um ClickUpGateway por conjunto de credenciais.

Rate limiter, árvore, resolver e caches pertencem à instância; nada é
global. O servidor MCP cria uma única instância a partir do ambiente.
"""

import time
from typing import Callable, Optional

from clickup_gateway import config
from clickup_gateway.client import ClickUpClient
from clickup_gateway.containers import FolderService, ListService, SpaceService
from clickup_gateway.hierarchy import WorkspaceService
from clickup_gateway.observability import Metrics
from clickup_gateway.rate_limiter import RateLimiter
from clickup_gateway.resolver import TaskResolver
from clickup_gateway.tasks import TaskService


class ClickUpGateway:
    def __init__(
        self,
        api_token: str,
        team_id: str,
        rate_limiter: Optional[RateLimiter] = None,
        metrics: Optional[Metrics] = None,
        base_url: str = config.API_BASE_URL,
        timeout: float = config.REQUEST_TIMEOUT,
        timer: Callable[[], float] = time.monotonic
    ):
        """
        Args:
            api_token: Token pessoal da API do ClickUp
            team_id: ID do workspace (team)
            rate_limiter: Rate limiter a usar (default: um novo, com RATE_LIMIT_PER_MINUTE)
            metrics: Destino de contadores e eventos
            timer: Relógio dos caches TTL (injetável nos testes)
        """
        self.metrics = metrics if metrics is not None else Metrics()
        self.rate_limiter = rate_limiter if rate_limiter is not None else RateLimiter(metrics=self.metrics)
        self.client = ClickUpClient(
            api_token,
            team_id,
            rate_limiter=self.rate_limiter,
            metrics=self.metrics,
            base_url=base_url,
            timeout=timeout
        )
        self.workspace = WorkspaceService(self.client, team_id)
        self.resolver = TaskResolver(self.client, self.workspace, timer=timer)
        self.tasks = TaskService(self.client, self.workspace, self.resolver, timer=timer)
        self.lists = ListService(self.client, self.workspace, self.resolver)
        self.folders = FolderService(self.client, self.workspace, self.resolver)
        self.spaces = SpaceService(self.workspace, self.resolver)

    @classmethod
    def from_env(cls, metrics: Optional[Metrics] = None) -> "ClickUpGateway":
        return cls(config.API_TOKEN, config.TEAM_ID, metrics=metrics)

    async def aclose(self) -> None:
        await self.client.aclose()
