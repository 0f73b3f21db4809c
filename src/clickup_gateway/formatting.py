"""
Formatação de output para os clientes MCP (markdown compacto).
"""

from datetime import datetime
from typing import Any, List, Optional, Union

from clickup_gateway.errors import ClickUpError, ClickUpServiceError, MultipleMatchesError


def sanitize_output(text: str) -> str:
    """
    Sanitiza texto de output.

    Remove caracteres de controle (exceto newline e tab) e limita o tamanho.
    """
    if not isinstance(text, str):
        text = str(text)

    sanitized = ''.join(
        char for char in text
        if char in '\n\t' or (ord(char) >= 32 and ord(char) != 127)
    )

    max_length = 100000  # 100KB
    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length] + "\n\n[... output truncado ...]"

    return sanitized


def format_timestamp(ts: Optional[Union[int, str]]) -> Optional[str]:
    """
    Converte timestamp em milissegundos para string legível.

    Args:
        ts: Timestamp em milissegundos

    Returns:
        String formatada YYYY-MM-DD HH:MM:SS ou None
    """
    if ts is None or ts == "":
        return None
    try:
        dt = datetime.fromtimestamp(int(ts) / 1000)
        return dt.strftime("%Y-%m-%d %H:%M:%S")
    except (ValueError, TypeError, OSError):
        return str(ts)


def format_task_markdown(task: Any) -> str:
    """Formata uma task em Markdown, com a hierarquia (space/folder/list)."""
    lines = [f"## {task.name}"]
    lines.append(f"- **ID:** `{task.id}`")
    if task.custom_id:
        lines.append(f"- **Custom ID:** `{task.custom_id}`")
    lines.append(f"- **Status:** {task.status_name or 'N/A'}")
    if task.url:
        lines.append(f"- **URL:** {task.url}")

    date_updated = format_timestamp(task.date_updated)
    due_date = format_timestamp(task.due_date)
    start_date = format_timestamp(task.start_date)
    if date_updated:
        lines.append(f"- **Modificado em:** {date_updated}")
    if due_date:
        lines.append(f"- **Prazo:** {due_date}")
    if start_date:
        lines.append(f"- **Início:** {start_date}")

    if task.priority is not None:
        lines.append(f"- **Prioridade:** {task.priority.name.lower()}")

    if task.assignees:
        lines.append(f"- **Responsáveis:** {', '.join(a.name for a in task.assignees)}")

    location = [ref.name for ref in (task.space, task.folder, task.list_ref) if ref is not None and ref.name]
    if location:
        lines.append(f"- **Local:** {' > '.join(location)}")

    if task.dependencies:
        deps = [f"{d.task_id} → {d.depends_on} (tipo {d.type})" for d in task.dependencies]
        lines.append(f"- **Dependências:** {'; '.join(deps)}")

    if task.description:
        lines.append(f"\n### Descrição\n{task.description}")

    return "\n".join(lines)


def format_tasks_compact(tasks: List[Any], title: Optional[str] = None) -> str:
    """
    Formata tasks em modo compacto: 1 linha por task.

    Formato: {i}. [{status}] {nome} | {prazo} | `{id}`
    """
    if not tasks:
        return "Nenhuma task encontrada."

    lines = [f"**{title or f'{len(tasks)} tasks'}:**\n"]
    for i, task in enumerate(tasks, 1):
        status = (task.status_name or '?')[:12]
        due = format_timestamp(task.due_date)
        due_str = due[:10] if due else '-'
        list_name = task.list_ref.name if task.list_ref and task.list_ref.name else '-'
        lines.append(f"{i}. [{status}] {task.name[:60]} | {list_name} | {due_str} | `{task.id}`")

    return "\n".join(lines)


def format_hierarchy(tree: Any) -> str:
    """Árvore do workspace em lista indentada."""
    icons = {"space": "🗂️", "folder": "📁", "list": "📋"}
    lines = [f"# {tree.root.name} `{tree.root.id}`\n"]

    def walk(node: Any, depth: int) -> None:
        for child in node.children:
            icon = icons.get(child.type.value, "-")
            lines.append(f"{'  ' * depth}- {icon} {child.name} `{child.id}`")
            walk(child, depth + 1)

    walk(tree.root, 0)
    if len(lines) == 1:
        lines.append("_Workspace sem spaces._")
    return "\n".join(lines)


def format_error(action: str, error: Exception) -> str:
    """
    Mensagem curta de erro para o cliente MCP, com o contexto estruturado.

    Args:
        action: Descrição da ação ("buscar task", "mover task", ...)
        error: Exceção capturada
    """
    if isinstance(error, MultipleMatchesError):
        return f"Erro ao {action}: {error.message}"

    if isinstance(error, ClickUpServiceError):
        lines = [f"Erro ao {action}: {error}"]
        lines.append(f"- **Tipo:** {error.code.value}")
        if error.context:
            ctx = ", ".join(f"{k}={v}" for k, v in error.context.items() if v is not None)
            if ctx:
                lines.append(f"- **Contexto:** {ctx}")
        if error.rate_limit and error.rate_limit.reset:
            lines.append(f"- **Rate limit reset:** {format_timestamp(int(error.rate_limit.reset * 1000))}")
        return "\n".join(lines)

    if isinstance(error, ClickUpError):
        return f"Erro ao {action}: {error}"

    return f"Erro ao {action}: {str(error)}"
