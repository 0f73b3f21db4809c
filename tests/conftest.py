"""
Fixtures para testes do ClickUp Gateway.
"""
import asyncio
import os
import sys

import pytest
import respx

# Adiciona src ao path para importar o pacote
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

# Seta variáveis de ambiente ANTES de importar o pacote
os.environ.setdefault("CLICKUP_API_TOKEN", "pk_test_token_123456789")
os.environ.setdefault("CLICKUP_TEAM_ID", "team1")

from clickup_gateway.gateway import ClickUpGateway
from clickup_gateway.observability import Metrics
from clickup_gateway.rate_limiter import RateLimiter

# Base URL da API
API_BASE = "https://api.clickup.com/api/v2"
API_TOKEN = "pk_test_token_123456789"
TEAM_ID = "team1"


class FakeClock:
    """Relógio controlado: sleep() avança o tempo em vez de esperar."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def metrics():
    return Metrics()


@pytest.fixture
def limiter(clock, metrics):
    """Rate limiter com relógio falso (sem esperas reais)."""
    return RateLimiter(metrics=metrics, clock=clock, wall_clock=clock, sleep=clock.sleep)


@pytest.fixture
def gateway(limiter, metrics, clock):
    """Gateway completo apontando para a API mockada."""
    return ClickUpGateway(API_TOKEN, TEAM_ID, rate_limiter=limiter, metrics=metrics, timer=clock)


@pytest.fixture
def api():
    """Router respx; rotas não chamadas não falham o teste."""
    with respx.mock(base_url=API_BASE, assert_all_called=False) as router:
        yield router


# ============================================================================
# FIXTURES DE DADOS MOCKADOS
# ============================================================================

@pytest.fixture
def make_task():
    """Fábrica de payloads de task no formato da API."""

    def _make(
        task_id,
        name,
        list_id="l2",
        list_name="Dev",
        status="to do",
        date_updated="1704153600000",
        **extra
    ):
        task = {
            "id": task_id,
            "name": name,
            "status": {"status": status, "type": "open"},
            "date_created": "1704067200000",
            "date_updated": date_updated,
            "assignees": [],
            "list": {"id": list_id, "name": list_name},
            "folder": {"hidden": True},
            "space": {"id": "s1"},
            "url": f"https://app.clickup.com/t/{task_id}",
        }
        task.update(extra)
        return task

    return _make


@pytest.fixture
def mock_spaces():
    """Dois spaces: Engenharia e Marketing."""
    return {
        "spaces": [
            {
                "id": "s1",
                "name": "Engenharia",
                "private": False,
                "statuses": [{"status": "to do"}, {"status": "in progress"}, {"status": "done"}]
            },
            {"id": "s2", "name": "Marketing", "private": True, "statuses": []}
        ]
    }


@pytest.fixture
def workspace_api(api, mock_spaces):
    """
    Rotas da hierarquia:

        Engenharia > Backlog (l1)
        Engenharia > Sprint 12 > Dev (l2)
        Engenharia > Sprint 12 > QA (l3)
        Marketing > Campanhas > Lançamentos (l4)

    O folder Campanhas vem sem lists embutidas (força GET /folder/f2/list).
    """
    api.get(f"/team/{TEAM_ID}/space", name="spaces").respond(200, json=mock_spaces)
    api.get("/space/s1/list").respond(200, json={"lists": [{"id": "l1", "name": "Backlog"}]})
    api.get("/space/s1/folder").respond(200, json={
        "folders": [
            {
                "id": "f1",
                "name": "Sprint 12",
                "lists": [{"id": "l2", "name": "Dev"}, {"id": "l3", "name": "QA"}]
            }
        ]
    })
    api.get("/space/s2/list").respond(200, json={"lists": []})
    api.get("/space/s2/folder").respond(200, json={"folders": [{"id": "f2", "name": "Campanhas"}]})
    api.get("/folder/f2/list", name="folder_lists").respond(200, json={"lists": [{"id": "l4", "name": "Lançamentos"}]})
    return api
