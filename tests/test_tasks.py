"""
Testes da façade de tasks: CRUD, mover, duplicar, dependências e validação.
"""
import json

import pytest
from httpx import Response

from clickup_gateway.errors import ClickUpServiceError, ErrorCode
from clickup_gateway.tasks import extract_task_data, is_terminal_status, match_status
from clickup_gateway.models import decode_task


def body(route):
    """JSON enviado na última chamada da rota."""
    return json.loads(route.calls.last.request.content)


@pytest.fixture
def source_task(make_task):
    return make_task(
        "t1",
        "Corrigir login",
        list_id="l2",
        list_name="Dev",
        status="Blocked",
        description="Detalhes",
        priority={"id": "2", "priority": "high", "color": "#ffcc00"},
        due_date="1704240000000",
        assignees=[{"id": 11, "username": "ana"}],
    )


# ============================================================================
# FUNÇÕES AUXILIARES
# ============================================================================

class TestHelpers:

    @pytest.mark.parametrize("status,expected", [
        ("done", True),
        ("Closed", True),
        (" COMPLETE ", True),
        ("in progress", False),
        (None, False),
    ])
    def test_status_terminal(self, status, expected):
        assert is_terminal_status(status) is expected

    def test_match_status_usa_grafia_do_destino(self):
        assert match_status("done", ["to do", "Done"]) == "Done"
        assert match_status("Blocked", ["to do", "Done"]) is None

    def test_extract_task_data(self, source_task):
        data = extract_task_data(decode_task(source_task))

        assert data == {
            "name": "Corrigir login",
            "description": "Detalhes",
            "assignees": [11],
            "priority": 2,
            "due_date": 1704240000000,
        }

    def test_prioridade_fora_do_dominio_vira_none(self, make_task):
        task = decode_task(make_task("t1", "X", priority={"id": "7"}))
        assert task.priority is None


# ============================================================================
# CRUD
# ============================================================================

class TestCrud:
    """Criação, atualização e remoção."""

    @pytest.mark.asyncio
    async def test_create_task(self, gateway, api, make_task):
        route = api.post("/list/l2/task").respond(200, json=make_task("t_new", "Nova Task"))

        task = await gateway.tasks.create_task("l2", "Nova Task", priority=3, tags=["backend"])

        assert task.id == "t_new"
        assert body(route) == {"name": "Nova Task", "notify_all": True, "priority": 3, "tags": ["backend"]}

    @pytest.mark.asyncio
    async def test_update_envia_apenas_campos_informados(self, gateway, api, make_task):
        route = api.put("/task/t1").respond(200, json=make_task("t1", "Renomeada"))

        task = await gateway.tasks.update_task("t1", name="Renomeada", priority=1)

        assert task.name == "Renomeada"
        assert body(route) == {"name": "Renomeada", "priority": 1}

    @pytest.mark.asyncio
    async def test_update_sem_campos(self, gateway):
        with pytest.raises(ClickUpServiceError) as exc_info:
            await gateway.tasks.update_task("t1")

        assert exc_info.value.code == ErrorCode.INVALID_PARAMETER

    @pytest.mark.asyncio
    async def test_update_assignees_gera_diff(self, gateway, api, make_task):
        api.get("/task/t1").respond(200, json=make_task("t1", "X", assignees=[{"id": 1}, {"id": 2}]))
        route = api.put("/task/t1").respond(200, json=make_task("t1", "X"))

        await gateway.tasks.update_task("t1", assignees=[2, 3])

        assert body(route)["assignees"] == {"add": [3], "rem": [1]}

    @pytest.mark.asyncio
    async def test_get_tasks_com_filtro_de_status(self, gateway, api, make_task):
        route = api.get("/list/l2/task").respond(200, json={"tasks": [make_task("t1", "X")], "last_page": True})

        tasks = await gateway.tasks.get_tasks("l2", page=0, statuses=["to do"])

        assert len(tasks) == 1
        assert route.calls.last.request.url.params.get_list("statuses[]") == ["to do"]

    @pytest.mark.asyncio
    async def test_delete_invalida_cache_de_nome(self, gateway, api):
        api.delete("/task/t1").respond(200, json={})
        gateway.resolver.cache_task_id("Corrigir login", "t1")

        await gateway.tasks.delete_task("t1")

        assert gateway.resolver.get_cached_task_id("Corrigir login") is None


# ============================================================================
# CONCLUSÃO REMOVE DEPENDÊNCIAS
# ============================================================================

class TestCompletionCleanup:
    """Status done/closed/complete remove dependências de bloqueio."""

    @pytest.mark.asyncio
    async def test_dependencia_removida_ao_concluir(self, gateway, api, make_task):
        blocked = make_task("t1", "X", status="done", dependencies=[
            {"task_id": "t9", "depends_on": "t1", "type": 1},
            {"task_id": "t1", "depends_on": "t7", "type": 0},
        ])
        cleaned = make_task("t1", "X", status="done", dependencies=[
            {"task_id": "t1", "depends_on": "t7", "type": 0},
        ])
        api.put("/task/t1").respond(200, json=make_task("t1", "X", status="done"))
        get_route = api.get("/task/t1")
        get_route.side_effect = [Response(200, json=blocked), Response(200, json=cleaned)]
        delete_route = api.delete("/task/t9/dependency").respond(200, json={})

        task = await gateway.tasks.update_task("t1", status="Done")

        assert task.status_name == "done"
        assert delete_route.call_count == 1
        params = delete_route.calls.last.request.url.params
        assert params["depends_on"] == "t1"
        assert params["dependency_of"] == "t9"

        # A task retornada é recarregada depois da limpeza
        assert get_route.call_count == 2
        assert not [d for d in task.dependencies if d.type == 1 and d.depends_on == "t1"]
        assert len(task.dependencies) == 1

    @pytest.mark.asyncio
    async def test_falha_na_remocao_nao_falha_o_update(self, gateway, api, make_task, metrics):
        api.put("/task/t1").respond(200, json=make_task("t1", "X", status="closed"))
        api.get("/task/t1").respond(200, json=make_task("t1", "X", status="closed", dependencies=[
            {"task_id": "t8", "depends_on": "t1", "type": 1},
            {"task_id": "t9", "depends_on": "t1", "type": 1},
        ]))
        api.delete("/task/t8/dependency").respond(500, json={"err": "Internal"})
        second = api.delete("/task/t9/dependency").respond(200, json={})

        task = await gateway.tasks.update_task("t1", status="closed")

        assert task.status_name == "closed"
        assert second.call_count == 1
        assert metrics.events["dependency_removal_failed"] == 1
        assert metrics.events["dependency_removed"] == 1

    @pytest.mark.asyncio
    async def test_falha_ao_buscar_dependencias_nao_falha_o_update(self, gateway, api, make_task):
        api.put("/task/t1").respond(200, json=make_task("t1", "X", status="complete"))
        api.get("/task/t1").respond(500, json={"err": "Internal"})

        task = await gateway.tasks.update_task("t1", status="complete")

        assert task.status_name == "complete"

    @pytest.mark.asyncio
    async def test_status_nao_terminal_nao_busca_dependencias(self, gateway, api, make_task):
        api.put("/task/t1").respond(200, json=make_task("t1", "X", status="in progress"))
        get_route = api.get("/task/t1").respond(200, json=make_task("t1", "X"))

        await gateway.tasks.update_task("t1", status="in progress")

        assert get_route.call_count == 0


# ============================================================================
# MOVER / DUPLICAR
# ============================================================================

class TestMoveAndDuplicate:
    """Operações derivadas de criar + deletar."""

    @pytest.mark.asyncio
    async def test_move_sem_status_compativel(self, gateway, api, make_task, source_task, metrics):
        """Status inexistente no destino: o payload vai sem status."""
        api.get("/task/t1").respond(200, json=source_task)
        api.get("/list/l3").respond(200, json={
            "id": "l3", "name": "QA", "statuses": [{"status": "to do"}, {"status": "done"}]
        })
        create = api.post("/list/l3/task").respond(200, json=make_task("t2", "Corrigir login", list_id="l3", list_name="QA"))
        delete = api.delete("/task/t1").respond(200, json={})

        new_task = await gateway.tasks.move_task("t1", "l3")

        assert new_task.id == "t2"
        payload = body(create)
        assert "status" not in payload
        assert payload == {
            "name": "Corrigir login",
            "description": "Detalhes",
            "assignees": [11],
            "priority": 2,
            "due_date": 1704240000000,
        }
        assert delete.call_count == 1
        assert metrics.events["task_moved"] == 1

    @pytest.mark.asyncio
    async def test_move_mantem_status_compativel(self, gateway, api, make_task):
        api.get("/task/t1").respond(200, json=make_task("t1", "X", status="done"))
        api.get("/list/l3").respond(200, json={"id": "l3", "name": "QA", "statuses": [{"status": "Done"}]})
        create = api.post("/list/l3/task").respond(200, json=make_task("t2", "X", list_id="l3"))
        api.delete("/task/t1").respond(200, json={})

        await gateway.tasks.move_task("t1", "l3")

        assert body(create)["status"] == "Done"

    @pytest.mark.asyncio
    async def test_status_derivados_das_tasks_do_destino(self, gateway, api, make_task):
        """List sem status no registro: usa os status das tasks existentes."""
        api.get("/task/t1").respond(200, json=make_task("t1", "X", status="review"))
        api.get("/list/l3").respond(200, json={"id": "l3", "name": "QA"})
        api.get("/list/l3/task").respond(200, json={
            "tasks": [make_task("t5", "Y", list_id="l3", status="review")],
            "last_page": True
        })
        create = api.post("/list/l3/task").respond(200, json=make_task("t2", "X", list_id="l3"))
        api.delete("/task/t1").respond(200, json={})

        await gateway.tasks.move_task("t1", "l3")

        assert body(create)["status"] == "review"

    @pytest.mark.asyncio
    async def test_move_para_list_inexistente(self, gateway, api, source_task):
        api.get("/task/t1").respond(200, json=source_task)
        list_route = api.get("/list/nope").respond(404, json={"err": "List not found"})
        create = api.post("/list/nope/task").respond(200, json={})

        for _ in range(2):
            with pytest.raises(ClickUpServiceError) as exc_info:
                await gateway.tasks.move_task("t1", "nope")
            assert exc_info.value.code == ErrorCode.NOT_FOUND

        assert create.call_count == 0
        # Resultado negativo fica em cache
        assert list_route.call_count == 1

    @pytest.mark.asyncio
    async def test_duplicate_na_mesma_list(self, gateway, api, make_task, source_task):
        api.get("/task/t1").respond(200, json=source_task)
        api.get("/list/l2").respond(200, json={"id": "l2", "name": "Dev", "statuses": [{"status": "Blocked"}]})
        create = api.post("/list/l2/task").respond(200, json=make_task("t3", "Cópia", list_id="l2"))
        delete = api.delete("/task/t1").respond(200, json={})

        new_task = await gateway.tasks.duplicate_task("t1", name="Cópia")

        assert new_task.id == "t3"
        assert body(create)["name"] == "Cópia"
        assert body(create)["status"] == "Blocked"
        assert delete.call_count == 0


# ============================================================================
# VALIDAÇÃO, DEPENDÊNCIAS E LINKS
# ============================================================================

class TestValidationAndLinks:

    @pytest.mark.asyncio
    async def test_validacao_em_lote_usa_cache(self, gateway, api, make_task):
        routes = [api.get(f"/task/v{i}").respond(200, json=make_task(f"v{i}", f"Task {i}")) for i in range(7)]
        ids = [f"v{i}" for i in range(7)]

        first = await gateway.tasks.validate_tasks_exist(ids)
        await gateway.tasks.validate_tasks_exist(ids)

        assert sorted(first) == sorted(ids)
        assert all(route.call_count == 1 for route in routes)

    @pytest.mark.asyncio
    async def test_validacao_expira(self, gateway, api, make_task, clock):
        route = api.get("/task/t1").respond(200, json=make_task("t1", "X"))

        await gateway.tasks.validate_task_exists("t1")
        await gateway.tasks.validate_task_exists("t1")
        clock.advance(301)
        await gateway.tasks.validate_task_exists("t1")

        assert route.call_count == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("dep_type,expected", [
        (0, {"depends_on": "t2"}),
        (1, {"dependency_of": "t2"}),
    ])
    async def test_add_dependency(self, gateway, api, dep_type, expected):
        route = api.post("/task/t1/dependency").respond(200, json={})

        await gateway.tasks.add_dependency("t1", "t2", dep_type)

        assert body(route) == expected

    @pytest.mark.asyncio
    async def test_remove_dependency(self, gateway, api):
        route = api.delete("/task/t1/dependency").respond(200, json={})

        await gateway.tasks.remove_dependency("t1", "t2")

        assert route.calls.last.request.url.params["depends_on"] == "t2"

    @pytest.mark.asyncio
    async def test_links(self, gateway, api):
        add = api.post("/task/t1/link/t2").respond(200, json={})
        remove = api.delete("/task/t1/link/t2").respond(200, json={})

        await gateway.tasks.add_link("t1", "t2")
        await gateway.tasks.remove_link("t1", "t2")

        assert add.call_count == 1
        assert remove.call_count == 1
