"""
Rate limiter / agendador de requisições para a API do ClickUp.

Funcionamento:
- Janela deslizante de 60s: com o orçamento esgotado, o chamador espera a
  requisição mais antiga sair da janela.
- Modo fila: após um 429 (ou preventivamente, com poucas requisições
  restantes), as operações passam a ser serializadas numa fila FIFO
  drenada por um único worker, com espaçamento adaptativo entre itens.
- Erros de rede e demais falhas propagam direto para o chamador; apenas
  RATE_LIMIT é re-enfileirado, sem limite de tentativas.
"""

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Deque, List, Optional

from loguru import logger

from clickup_gateway import config
from clickup_gateway.errors import ClickUpServiceError, RateLimitInfo
from clickup_gateway.observability import Metrics, emit_event

Operation = Callable[[], Awaitable[Any]]


@dataclass
class QueuedRequest:
    """Uma requisição aguardando na fila, com o future do chamador."""
    operation: Operation
    future: asyncio.Future
    position: int
    attempts: int = 0
    enqueued_at: float = field(default=0.0)


class RateLimiter:
    """Rate limiter com janela deslizante, modo fila e espaçamento adaptativo."""

    def __init__(
        self,
        max_requests: int = config.RATE_LIMIT_PER_MINUTE,
        window_seconds: float = config.RATE_LIMIT_WINDOW,
        max_header_spacing: float = config.MAX_HEADER_SPACING,
        max_queue_spacing: float = config.MAX_QUEUE_SPACING,
        metrics: Optional[Metrics] = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        """
        Args:
            max_requests: Requisições permitidas por janela
            window_seconds: Tamanho da janela deslizante
            max_header_spacing: Teto do espaçamento derivado dos headers
            max_queue_spacing: Teto do espaçamento após 429 na fila
            metrics: Destino dos eventos de observabilidade
            clock: Relógio monotônico (injetável nos testes)
            wall_clock: Relógio de parede, para comparar com X-RateLimit-Reset
            sleep: Função de espera (injetável nos testes)
        """
        if max_requests <= 0:
            raise ValueError("max_requests deve ser maior que zero")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.max_header_spacing = max_header_spacing
        self.max_queue_spacing = max_queue_spacing
        self.metrics = metrics
        self._clock = clock
        self._wall_clock = wall_clock
        self._sleep = sleep

        self.default_spacing = window_seconds / max_requests
        self.current_spacing = self.default_spacing
        self.requests: List[float] = []
        self.last_reset: Optional[float] = None
        self.queue_active = False
        self._queue: Deque[QueuedRequest] = deque()
        self._worker: Optional[asyncio.Task] = None

    @property
    def queue_depth(self) -> int:
        return len(self._queue)

    def _cleanup(self) -> None:
        """Remove requests fora da janela."""
        cutoff = self._clock() - self.window_seconds
        self.requests = [t for t in self.requests if t > cutoff]

    async def _wait_for_window(self) -> None:
        self._cleanup()
        if len(self.requests) < self.max_requests:
            return

        wait_time = self.window_seconds - (self._clock() - self.requests[0])
        if wait_time > 0:
            logger.warning(
                f"Rate limit atingido ({len(self.requests)}/{self.max_requests} req/min). "
                f"Aguardando {wait_time:.1f}s"
            )
            emit_event(self.metrics, "window_wait", wait_seconds=round(wait_time, 3))
            await self._sleep(wait_time)
            self._cleanup()

    async def execute(self, operation: Operation) -> Any:
        """
        Executa a operação respeitando o rate limit.

        Args:
            operation: Função sem argumentos que retorna um awaitable

        Returns:
            O resultado da operação (possivelmente após passar pela fila)
        """
        await self._wait_for_window()

        if self.queue_active:
            return await self._enqueue(operation)

        try:
            result = await operation()
        except ClickUpServiceError as e:
            if not e.is_rate_limit:
                raise
            if self.metrics is not None:
                self.metrics.record_rate_limit_hit()
            logger.warning(f"Rate limit (429) recebido, entrando em modo fila | fila={len(self._queue)}")
            self._enter_queue_mode("rate_limit")
            return await self._enqueue(operation)

        self.requests.append(self._clock())
        return result

    # ------------------------------------------------------------------------
    # Fila
    # ------------------------------------------------------------------------

    def _enter_queue_mode(self, reason: str) -> None:
        if not self.queue_active:
            self.queue_active = True
            emit_event(self.metrics, "queue_enter", level="INFO", reason=reason, spacing=self.current_spacing)
        self._ensure_worker()

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._drain())

    async def _enqueue(self, operation: Operation) -> Any:
        position = len(self._queue) + 1
        estimated_wait = position * self.current_spacing
        request = QueuedRequest(
            operation=operation,
            future=asyncio.get_running_loop().create_future(),
            position=position,
            enqueued_at=self._clock()
        )
        self._queue.append(request)
        emit_event(
            self.metrics,
            "request_queued",
            level="INFO",
            queue_position=position,
            estimated_wait_seconds=round(estimated_wait, 1),
            spacing=self.current_spacing
        )
        self._ensure_worker()
        return await request.future

    def _queue_delay(self, depth: int) -> float:
        # Filas maiores recebem espaçamento maior
        if depth > 20:
            return self.current_spacing * 2
        if depth > 10:
            return self.current_spacing * 1.5
        return self.current_spacing

    def _note_queue_position(self, error: ClickUpServiceError, request: QueuedRequest) -> ClickUpServiceError:
        """Anexa ao erro a posição em que a requisição foi enfileirada."""
        error.message = f"{error.message} (requisição enfileirada na posição {request.position})"
        error.args = (error.message,)
        error.context["queue_position"] = request.position
        return error

    @staticmethod
    def _settle(request: QueuedRequest, result: Any = None, error: Optional[Exception] = None) -> None:
        # O chamador pode ter sido cancelado enquanto a operação rodava
        if request.future.done():
            return
        if error is not None:
            request.future.set_exception(error)
        else:
            request.future.set_result(result)

    async def _drain(self) -> None:
        """Worker único: executa um item por vez, espaçado, até a fila esvaziar."""
        try:
            while self._queue:
                await self._sleep(self._queue_delay(len(self._queue)))

                request = self._queue.popleft()
                if request.future.done():
                    continue
                request.attempts += 1

                try:
                    result = await request.operation()
                except ClickUpServiceError as e:
                    if e.is_rate_limit and not request.future.done():
                        if self.metrics is not None:
                            self.metrics.record_rate_limit_hit()
                        self.current_spacing = min(self.current_spacing * 1.5, self.max_queue_spacing)
                        logger.warning(
                            f"Rate limit durante processamento da fila (posição original {request.position}), "
                            f"espaçamento agora {self.current_spacing:.2f}s"
                        )
                        emit_event(self.metrics, "spacing_adjusted", spacing=self.current_spacing, source="queue_rate_limit")
                        # Volta para a cabeça da fila: preserva a ordem FIFO
                        self._queue.appendleft(request)
                        continue
                    self._settle(request, error=self._note_queue_position(e, request))
                    continue
                except Exception as e:
                    self._settle(request, error=e)
                    continue

                self.requests.append(self._clock())
                self._settle(request, result=result)
                logger.trace(f"Item da fila processado | tentativas={request.attempts} | restantes={len(self._queue)}")
        finally:
            self.queue_active = False
            emit_event(self.metrics, "queue_exit", level="INFO", spacing=self.current_spacing)

    # ------------------------------------------------------------------------
    # Espaçamento adaptativo
    # ------------------------------------------------------------------------

    def observe(self, info: Optional[RateLimitInfo]) -> None:
        """
        Ajusta o espaçamento a partir dos headers X-RateLimit-* de uma resposta.

        O espaçamento só aumenta aqui; com remaining <= 5 o modo fila é
        ativado preventivamente.
        """
        if info is None or info.limit is None or info.remaining is None:
            return

        limit, remaining, reset = info.limit, info.remaining, info.reset
        if remaining < limit * 0.2:
            logger.warning(f"Aproximando do rate limit | remaining={remaining} limit={limit} reset={reset}")
        else:
            logger.debug(f"Rate limit status | remaining={remaining} limit={limit} reset={reset}")

        if not reset or remaining >= limit * 0.3:
            return

        self.last_reset = reset
        time_to_reset = max(0.0, reset - self._wall_clock())
        per_request = time_to_reset / max(remaining, 1)

        if remaining <= 5:
            safe_spacing = per_request * 2
            if not self.queue_active:
                logger.info(f"Entrando em modo fila preventivamente | remaining={remaining} limit={limit}")
                self._enter_queue_mode("low_remaining")
        elif remaining <= 20:
            safe_spacing = per_request * 1.5
        else:
            safe_spacing = per_request * 1.1

        adjusted = min(safe_spacing, self.max_header_spacing)
        if adjusted > self.current_spacing:
            emit_event(
                self.metrics,
                "spacing_adjusted",
                previous=self.current_spacing,
                spacing=adjusted,
                remaining=remaining,
                time_to_reset=round(time_to_reset, 2),
                source="headers"
            )
            self.current_spacing = adjusted
