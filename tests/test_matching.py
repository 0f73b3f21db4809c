"""
Testes da pontuação de nomes e das sugestões "você quis dizer".
"""
import pytest

from clickup_gateway.matching import (
    SCORE_CASE_INSENSITIVE,
    SCORE_CONTAINS,
    SCORE_EXACT,
    SCORE_IGNORING_DECORATION,
    SCORE_NONE,
    did_you_mean,
    match_quality_label,
    score_name,
    strip_decoration,
    suggest_names,
)


class TestScoreName:
    """Faixas de pontuação."""

    @pytest.mark.parametrize("candidate,query,expected", [
        ("fix bug", "fix bug", SCORE_EXACT),
        ("Fix bug", "fix bug", SCORE_CASE_INSENSITIVE),
        ("🚀 Deploy", "Deploy", SCORE_IGNORING_DECORATION),
        ("[URGENTE] Deploy!", "deploy", SCORE_CONTAINS),
        ("Deploy produção", "deploy", SCORE_CONTAINS),
        ("Fix the bug", "fix bug", SCORE_NONE),
        ("", "fix bug", SCORE_NONE),
    ])
    def test_faixas(self, candidate, query, expected):
        assert score_name(candidate, query) == expected

    def test_emoji_no_termo_buscado(self):
        assert score_name("Deploy", "✅ deploy") == SCORE_IGNORING_DECORATION

    def test_strip_decoration(self):
        assert strip_decoration("🔥  Corrigir   login 🔥") == "Corrigir login"
        assert strip_decoration("") == ""


class TestMatchQuality:
    """Rótulos de qualidade exibidos nos candidatos."""

    def test_rotulos(self):
        assert match_quality_label(100) == "match exato"
        assert match_quality_label(80) == "match exato (ignorando maiúsculas)"
        assert match_quality_label(70) == "match ignorando emojis"
        assert match_quality_label(50) == "contém o termo"
        assert match_quality_label(10) == "match parcial"


class TestSuggestions:
    """Sugestões via rapidfuzz."""

    def test_sugere_nome_parecido(self):
        suggestions = suggest_names("Bcklog", ["Backlog", "Dev", "QA"])
        assert suggestions[0] == "Backlog"

    def test_limite_de_sugestoes(self):
        names = ["Sprint 1", "Sprint 2", "Sprint 3", "Sprint 4", "Sprint 5"]
        assert len(suggest_names("sprint", names)) == 3

    def test_sem_sugestao(self):
        assert did_you_mean("xyz", ["Backlog"]) is None
        assert did_you_mean("Backlog", []) is None

    def test_texto_da_sugestao(self):
        assert did_you_mean("Devv", ["Dev"]) == 'Você quis dizer: "Dev"?'
