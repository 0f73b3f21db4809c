"""
Testes da resolução de nomes: pontuação, desambiguação e caches.
"""
import pytest

from conftest import TEAM_ID
from clickup_gateway.errors import ClickUpServiceError, ErrorCode, MultipleMatchesError


@pytest.fixture
def team_tasks(workspace_api):
    """Registra GET /team/{id}/task com as tasks informadas."""

    def _register(*tasks):
        return workspace_api.get(f"/team/{TEAM_ID}/task", name="team_tasks").respond(
            200, json={"tasks": list(tasks), "last_page": True}
        )

    return _register


def task_route(api, payload):
    return api.get(f"/task/{payload['id']}").respond(200, json=payload)


# ============================================================================
# DESAMBIGUAÇÃO
# ============================================================================

class TestDisambiguation:
    """Política de escolha entre candidatos."""

    @pytest.mark.asyncio
    async def test_match_exato_vence_case_insensitive(self, gateway, workspace_api, team_tasks, make_task):
        """Match exato "fix bug" (100) vence "Fix bug" (80); "Fix the bug" não pontua."""
        exact = make_task("t1", "fix bug", list_id="l2", list_name="Dev")
        team_tasks(
            exact,
            make_task("t2", "Fix bug", list_id="l3", list_name="QA"),
            make_task("t3", "Fix the bug", list_id="l1", list_name="Backlog"),
        )
        task_route(workspace_api, exact)

        task = await gateway.resolver.find_tasks(task_name="fix bug")

        assert task.id == "t1"
        assert task.list_ref.name == "Dev"
        assert task.folder.name == "Sprint 12"
        assert task.space.name == "Engenharia"

    @pytest.mark.asyncio
    async def test_unico_case_insensitive_vence_parciais(self, gateway, workspace_api, team_tasks, make_task, metrics):
        target = make_task("t1", "deploy", list_id="l2")
        team_tasks(
            target,
            make_task("t2", "Deploy produção", list_id="l3", list_name="QA"),
            make_task("t3", "Revisar deploy", list_id="l1", list_name="Backlog"),
        )
        task_route(workspace_api, target)

        task = await gateway.resolver.find_tasks(task_name="Deploy")

        assert task.id == "t1"
        assert metrics.events["disambiguation"] == 1

    @pytest.mark.asyncio
    async def test_empate_entre_lists_falha_com_candidatos(self, gateway, workspace_api, team_tasks, make_task):
        team_tasks(
            make_task("t1", "Deploy", list_id="l2", list_name="Dev"),
            make_task("t2", "Deploy", list_id="l3", list_name="QA"),
        )

        with pytest.raises(MultipleMatchesError) as exc_info:
            await gateway.resolver.find_tasks(task_name="Deploy")

        error = exc_info.value
        assert error.code == ErrorCode.INVALID_PARAMETER
        assert {c["id"] for c in error.candidates} == {"t1", "t2"}
        paths = {c["path"] for c in error.candidates}
        assert paths == {"Engenharia > Sprint 12 > Dev > Deploy", "Engenharia > Sprint 12 > QA > Deploy"}
        assert "Várias tasks" in error.message
        assert all(c["match_quality"] == "match exato" for c in error.candidates)

    @pytest.mark.asyncio
    async def test_allow_multiple_retorna_todos(self, gateway, workspace_api, team_tasks, make_task):
        team_tasks(
            make_task("t1", "Deploy", list_id="l2", list_name="Dev", date_updated="1000"),
            make_task("t2", "Deploy", list_id="l3", list_name="QA", date_updated="2000"),
            make_task("t3", "Deploy hotfix", list_id="l1", list_name="Backlog"),
        )

        tasks = await gateway.resolver.find_tasks(task_name="Deploy", allow_multiple_matches=True)

        # Ordem: score desc, depois o mais recente
        assert [t.id for t in tasks] == ["t2", "t1", "t3"]
        assert tasks[0].list_ref.name == "QA"

    @pytest.mark.asyncio
    async def test_empate_na_mesma_list_vence_mais_recente(self, gateway, workspace_api, team_tasks, make_task):
        newest = make_task("t2", "Deploy", list_id="l2", date_updated="1704200000000")
        team_tasks(
            make_task("t1", "Deploy", list_id="l2", date_updated="1704100000000"),
            newest,
        )
        task_route(workspace_api, newest)

        task = await gateway.resolver.find_tasks(task_name="Deploy")

        assert task.id == "t2"

    @pytest.mark.asyncio
    async def test_nao_encontrada_sugere_nome(self, gateway, workspace_api, team_tasks, make_task):
        team_tasks(make_task("t1", "Deploy", list_id="l2"))

        with pytest.raises(ClickUpServiceError) as exc_info:
            await gateway.resolver.find_tasks(task_name="Deplyo")

        assert exc_info.value.code == ErrorCode.NOT_FOUND
        assert 'Você quis dizer: "Deploy"?' in exc_info.value.message
        assert exc_info.value.context["scope"] == "workspace"


# ============================================================================
# BUSCA DENTRO DE UMA LIST
# ============================================================================

class TestListScopedSearch:
    """Busca por nome restrita a uma list."""

    @pytest.mark.asyncio
    async def test_busca_por_nome_da_list(self, gateway, workspace_api, make_task):
        route = workspace_api.get("/list/l3/task").respond(200, json={
            "tasks": [make_task("t5", "Deploy", list_id="l3", list_name="QA")],
            "last_page": True
        })

        task = await gateway.resolver.find_tasks(task_name="deploy", list_name="QA")

        assert task.id == "t5"
        assert route.call_count == 1

    @pytest.mark.asyncio
    async def test_list_inexistente_sugere_nome(self, gateway, workspace_api):
        with pytest.raises(ClickUpServiceError) as exc_info:
            await gateway.resolver.find_tasks(task_name="Deploy", list_name="Backlg")

        assert exc_info.value.code == ErrorCode.NOT_FOUND
        assert "Backlog" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_task_inexistente_na_list(self, gateway, api, make_task):
        api.get("/list/l2/task").respond(200, json={"tasks": [make_task("t1", "Outra")], "last_page": True})

        with pytest.raises(ClickUpServiceError) as exc_info:
            await gateway.resolver.find_tasks(task_name="Deploy", list_id="l2")

        assert exc_info.value.code == ErrorCode.NOT_FOUND
        assert exc_info.value.context["list_id"] == "l2"

    @pytest.mark.asyncio
    async def test_list_id_inexistente_nomeia_busca_e_escopo(self, gateway, api):
        api.get("/list/x/task").respond(404, json={"err": "List not found"})

        with pytest.raises(ClickUpServiceError) as exc_info:
            await gateway.resolver.find_tasks(task_name="Deploy", list_id="x")

        error = exc_info.value
        assert error.code == ErrorCode.NOT_FOUND
        assert error.message == 'List x não encontrada ao buscar a task "Deploy".'
        assert error.context == {"task_name": "Deploy", "list_id": "x", "scope": "list"}


# ============================================================================
# CACHE NOME -> ID
# ============================================================================

class TestNameCache:
    """Resolução idempotente e expiração do cache."""

    @pytest.mark.asyncio
    async def test_segunda_resolucao_sem_chamadas(self, gateway, workspace_api, team_tasks, make_task, metrics):
        target = make_task("t1", "fix bug", list_id="l2")
        team_tasks(target)
        task_route(workspace_api, target)

        first = await gateway.resolver.resolve_task_id(task_name="fix bug")
        calls_after_first = len(workspace_api.calls)
        second = await gateway.resolver.resolve_task_id(task_name="fix bug")

        assert first == second == "t1"
        assert len(workspace_api.calls) == calls_after_first
        assert metrics.cache_hits >= 1

    @pytest.mark.asyncio
    async def test_cache_expira_em_5_minutos(self, gateway, workspace_api, team_tasks, make_task, clock):
        target = make_task("t1", "fix bug", list_id="l2")
        route = team_tasks(target)
        task_route(workspace_api, target)

        await gateway.resolver.resolve_task_id(task_name="fix bug")
        clock.advance(301)
        await gateway.resolver.resolve_task_id(task_name="fix bug")

        assert route.call_count == 2

    @pytest.mark.asyncio
    async def test_resumo_global_em_cache_por_60s(self, gateway, workspace_api, team_tasks, make_task, clock):
        route = team_tasks(
            make_task("t1", "Deploy", list_id="l2"),
            make_task("t2", "Deploy", list_id="l3", list_name="QA"),
        )

        await gateway.resolver.find_tasks(task_name="Deploy", allow_multiple_matches=True)
        await gateway.resolver.find_tasks(task_name="Deploy", allow_multiple_matches=True)
        assert route.call_count == 1

        clock.advance(61)
        await gateway.resolver.find_tasks(task_name="Deploy", allow_multiple_matches=True)
        assert route.call_count == 2

    @pytest.mark.asyncio
    async def test_cache_obsoleto_refaz_busca(self, gateway, workspace_api, team_tasks, make_task):
        """ID em cache que não existe mais: a entrada é descartada e a busca refeita."""
        target = make_task("t1", "fix bug", list_id="l2")
        team_tasks(target)
        task_route(workspace_api, target)
        workspace_api.get("/task/gone").respond(404, json={"err": "Task not found"})
        gateway.resolver.cache_task_id("fix bug", "gone")

        task = await gateway.resolver.find_tasks(task_name="fix bug")

        assert task.id == "t1"
        assert gateway.resolver.get_cached_task_id("fix bug") == "t1"


# ============================================================================
# IDS E CUSTOM IDS
# ============================================================================

class TestTaskIds:
    """Busca direta por ID."""

    @pytest.mark.asyncio
    async def test_id_regular_nao_chama_api(self, gateway, api):
        assert await gateway.resolver.resolve_task_id(task_id="86abc123") == "86abc123"
        assert len(api.calls) == 0

    @pytest.mark.asyncio
    async def test_custom_id_detectado(self, gateway, api, make_task):
        route = api.get("/task/DEV-42", params={"custom_task_ids": "true"}).respond(
            200, json=make_task("86abc", "Deploy", custom_id="DEV-42")
        )

        task_id = await gateway.resolver.resolve_task_id(task_id="DEV-42")

        assert task_id == "86abc"
        assert route.calls.last.request.url.params["team_id"] == TEAM_ID

    @pytest.mark.asyncio
    async def test_custom_id_cai_para_id_regular(self, gateway, api, make_task):
        api.get("/task/ABC-1", params={"custom_task_ids": "true"}).respond(404, json={"err": "Task not found"})
        plain = api.get("/task/ABC-1").respond(200, json=make_task("ABC-1", "Task com ID estranho"))

        task = await gateway.resolver.get_task("ABC-1")

        assert task.id == "ABC-1"
        assert plain.call_count == 1

    @pytest.mark.asyncio
    async def test_sem_referencia(self, gateway):
        with pytest.raises(ClickUpServiceError) as exc_info:
            await gateway.resolver.find_tasks()

        assert exc_info.value.code == ErrorCode.INVALID_PARAMETER


# ============================================================================
# FALLBACK DA BUSCA GLOBAL
# ============================================================================

class TestGlobalFallback:
    """Endpoint de tasks do team rejeitado: varredura list a list."""

    @pytest.mark.asyncio
    async def test_varre_lists_quando_endpoint_do_team_falha(self, gateway, workspace_api, make_task, metrics):
        workspace_api.get(f"/team/{TEAM_ID}/task").respond(404, json={"err": "Route not found"})
        for list_id in ("l1", "l2", "l3"):
            workspace_api.get(f"/list/{list_id}/task").respond(200, json={"tasks": [], "last_page": True})
        target = make_task("t9", "Campanha de Natal", list_id="l4", list_name="Lançamentos")
        workspace_api.get("/list/l4/task").respond(200, json={"tasks": [target], "last_page": True})
        task_route(workspace_api, target)

        task = await gateway.resolver.find_tasks(task_name="campanha de natal")

        assert task.id == "t9"
        assert task.folder.name == "Campanhas"
        assert metrics.events["global_search_fallback"] == 1
