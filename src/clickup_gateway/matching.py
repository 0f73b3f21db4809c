"""
Pontuação de nomes para a resolução de tasks.

Faixas (maior vence):
    100  igual (case-sensitive)
     80  igual ignorando maiúsculas/minúsculas
     70  igual ignorando emojis/símbolos nas pontas
     50  contém o termo buscado
      0  sem match
"""

import re
from typing import List, Optional, Sequence

from rapidfuzz import fuzz, process

SCORE_EXACT = 100
SCORE_CASE_INSENSITIVE = 80
SCORE_IGNORING_DECORATION = 70
SCORE_CONTAINS = 50
SCORE_NONE = 0

# A partir deste score um candidato único vence os matches mais fracos
EXACT_CLASS_THRESHOLD = SCORE_CASE_INSENSITIVE

# Limiar (0-100) do WRatio para sugestões "você quis dizer"
SUGGESTION_CUTOFF = 60

_DECORATION = re.compile(r"^[\W_]+|[\W_]+$", re.UNICODE)
_SPACES = re.compile(r"\s+")


def strip_decoration(name: str) -> str:
    """Remove emojis e símbolos das pontas e normaliza espaços."""
    return _SPACES.sub(" ", _DECORATION.sub("", name or "")).strip()


def score_name(candidate: str, query: str) -> int:
    """Pontua o nome de um candidato contra o termo buscado."""
    if not candidate or not query:
        return SCORE_NONE
    if candidate == query:
        return SCORE_EXACT

    cand_lower = candidate.lower()
    query_lower = query.lower()
    if cand_lower == query_lower:
        return SCORE_CASE_INSENSITIVE

    cand_plain = strip_decoration(candidate).lower()
    query_plain = strip_decoration(query).lower()
    if cand_plain and cand_plain == query_plain:
        return SCORE_IGNORING_DECORATION

    if query_lower in cand_lower or (query_plain and query_plain in cand_plain):
        return SCORE_CONTAINS

    return SCORE_NONE


def match_quality_label(score: int) -> str:
    if score >= SCORE_EXACT:
        return "match exato"
    if score >= SCORE_CASE_INSENSITIVE:
        return "match exato (ignorando maiúsculas)"
    if score >= SCORE_IGNORING_DECORATION:
        return "match ignorando emojis"
    if score >= SCORE_CONTAINS:
        return "contém o termo"
    return "match parcial"


def suggest_names(query: str, names: Sequence[str], limit: int = 3, cutoff: float = SUGGESTION_CUTOFF) -> List[str]:
    """
    Sugere os nomes mais próximos do termo (rapidfuzz WRatio).

    Returns:
        Até `limit` nomes distintos, do mais parecido ao menos parecido
    """
    unique = list(dict.fromkeys(n for n in names if n))
    if not query or not unique:
        return []

    matches = process.extract(
        query,
        unique,
        scorer=fuzz.WRatio,
        processor=str.lower,
        score_cutoff=cutoff,
        limit=limit
    )
    return [name for name, _score, _idx in matches]


def did_you_mean(query: str, names: Sequence[str]) -> Optional[str]:
    """Texto "Você quis dizer: ..." ou None se não há sugestões."""
    suggestions = suggest_names(query, names)
    if not suggestions:
        return None
    return "Você quis dizer: " + ", ".join(f'"{s}"' for s in suggestions) + "?"
