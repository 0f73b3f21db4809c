"""
Métricas e eventos estruturados do gateway.

Os componentes do núcleo (rate limiter, caches, resolver, façade) emitem
eventos nome/payload; aqui eles viram log via loguru e contadores em Metrics.
"""

import statistics
from collections import defaultdict
from contextlib import contextmanager
from time import perf_counter
from typing import Any, Dict, List, Optional

from loguru import logger


class Metrics:
    """
    Métricas completas para diagnóstico e observabilidade.

    Inclui contadores, eventos e métricas de latência (p50, p95, p99).
    """

    def __init__(self, max_latency_samples: int = 1000):
        """
        Inicializa métricas.

        Args:
            max_latency_samples: Máximo de amostras de latência a manter (para memória)
        """
        self.tool_calls: Dict[str, int] = defaultdict(int)
        self.tool_errors: Dict[str, int] = defaultdict(int)
        self.events: Dict[str, int] = defaultdict(int)
        self.cache_hits: int = 0
        self.cache_misses: int = 0
        self.api_calls: int = 0
        self.rate_limit_hits: int = 0
        self._max_samples = max_latency_samples
        self._latencies: List[float] = []  # em milissegundos
        self._endpoint_latencies: Dict[str, List[float]] = defaultdict(list)

    def record_tool_call(self, tool_name: str) -> None:
        """Registra chamada de tool."""
        self.tool_calls[tool_name] += 1

    def record_tool_error(self, tool_name: str) -> None:
        """Registra erro em tool."""
        self.tool_errors[tool_name] += 1

    def record_cache_hit(self) -> None:
        self.cache_hits += 1

    def record_cache_miss(self) -> None:
        self.cache_misses += 1

    def record_api_call(self) -> None:
        self.api_calls += 1

    def record_rate_limit_hit(self) -> None:
        self.rate_limit_hits += 1

    def record_event(self, name: str) -> None:
        self.events[name] += 1

    def record_latency(self, latency_ms: float, endpoint: Optional[str] = None) -> None:
        """
        Registra latência de uma requisição.

        Args:
            latency_ms: Latência em milissegundos
            endpoint: Rótulo da requisição (opcional, para métricas por endpoint)
        """
        if len(self._latencies) >= self._max_samples:
            self._latencies.pop(0)
        self._latencies.append(latency_ms)

        if endpoint:
            samples = self._endpoint_latencies[endpoint]
            if len(samples) >= self._max_samples // 10:
                samples.pop(0)
            samples.append(latency_ms)

    @contextmanager
    def measure_latency(self, endpoint: Optional[str] = None):
        """
        Context manager para medir latência automaticamente.

        Usage:
            with metrics.measure_latency("GET /task"):
                result = await client.get(...)
        """
        start = perf_counter()
        try:
            yield
        finally:
            elapsed_ms = (perf_counter() - start) * 1000
            self.record_latency(elapsed_ms, endpoint)

    def _calculate_percentiles(self, data: List[float]) -> Dict[str, float]:
        """Calcula percentis de latência."""
        if not data:
            return {"p50": 0, "p95": 0, "p99": 0, "avg": 0, "min": 0, "max": 0}

        sorted_data = sorted(data)
        n = len(sorted_data)

        return {
            "p50": sorted_data[int(n * 0.50)],
            "p95": sorted_data[int(n * 0.95)] if n > 1 else sorted_data[-1],
            "p99": sorted_data[int(n * 0.99)] if n > 1 else sorted_data[-1],
            "avg": statistics.mean(sorted_data),
            "min": sorted_data[0],
            "max": sorted_data[-1],
            "samples": n
        }

    def get_summary(self) -> Dict[str, Any]:
        """Retorna resumo completo das métricas."""
        lookups = self.cache_hits + self.cache_misses
        summary = {
            "tool_calls": dict(self.tool_calls),
            "tool_errors": dict(self.tool_errors),
            "events": dict(self.events),
            "cache_hits": self.cache_hits,
            "cache_misses": self.cache_misses,
            "cache_hit_rate": self.cache_hits / lookups if lookups > 0 else 0,
            "api_calls": self.api_calls,
            "rate_limit_hits": self.rate_limit_hits,
            "latency_ms": self._calculate_percentiles(self._latencies)
        }

        if self._endpoint_latencies:
            busiest = sorted(
                self._endpoint_latencies.items(),
                key=lambda item: len(item[1]),
                reverse=True
            )[:5]
            summary["latency_by_endpoint"] = {
                endpoint: self._calculate_percentiles(samples)
                for endpoint, samples in busiest
            }

        return summary


# Eventos que contam como hit/miss de cache
_CACHE_HIT_EVENTS = {"cache_hit"}
_CACHE_MISS_EVENTS = {"cache_miss"}


def emit_event(metrics: Optional[Metrics], name: str, level: str = "DEBUG", **payload: Any) -> None:
    """
    Emite um evento estruturado (nome + payload).

    Args:
        metrics: Métricas onde contabilizar o evento (None = só log)
        name: Nome do evento, ex: "queue_enter", "spacing_adjusted"
        level: Nível de log do loguru
        **payload: Campos do evento
    """
    if metrics is not None:
        metrics.record_event(name)
        if name in _CACHE_HIT_EVENTS:
            metrics.record_cache_hit()
        elif name in _CACHE_MISS_EVENTS:
            metrics.record_cache_miss()
    logger.bind(event=name, **payload).log(level, f"{name} | {payload}")
