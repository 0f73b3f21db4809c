"""
Cliente HTTP do ClickUp: autenticação, classificação de erros e rate limiting.

Toda chamada passa pelo RateLimiter; cada resposta alimenta o espaçamento
adaptativo com os headers X-RateLimit-*.
"""

import json
from typing import Any, Dict, Optional

import httpx
from loguru import logger

from clickup_gateway import config
from clickup_gateway.errors import ClickUpServiceError, ConfigurationError, ErrorCode, RateLimitInfo
from clickup_gateway.observability import Metrics
from clickup_gateway.rate_limiter import RateLimiter


def parse_rate_limit_headers(headers: httpx.Headers) -> Optional[RateLimitInfo]:
    """Extrai X-RateLimit-Limit/Remaining/Reset (None se ausentes ou inválidos)."""
    limit = headers.get("x-ratelimit-limit")
    remaining = headers.get("x-ratelimit-remaining")
    if limit is None or remaining is None:
        return None
    try:
        reset = headers.get("x-ratelimit-reset")
        return RateLimitInfo(
            limit=int(limit),
            remaining=int(remaining),
            reset=float(reset) if reset else None
        )
    except ValueError:
        logger.warning(f"Headers de rate limit inválidos: limit={limit} remaining={remaining}")
        return None


def _error_detail(response: httpx.Response) -> tuple:
    """Retorna (mensagem do backend, payload bruto)."""
    try:
        body = response.json()
    except (json.JSONDecodeError, ValueError):
        return response.text or "", response.text
    if isinstance(body, dict):
        return str(body.get("err") or body.get("error") or ""), body
    return "", body


def classify_response(
    response: httpx.Response,
    method: str,
    path: str,
    rate_limit: Optional[RateLimitInfo] = None
) -> ClickUpServiceError:
    """Converte uma resposta HTTP de erro em ClickUpServiceError."""
    status = response.status_code
    backend_msg, payload = _error_detail(response)
    context = {"method": method, "path": path}

    if status == 429:
        code = ErrorCode.RATE_LIMIT
        message = "Rate limit excedido. A requisição será reenfileirada."
    elif status in (401, 403):
        code = ErrorCode.UNAUTHORIZED
        message = "Autorização falhou. Verifique o token da API e as permissões."
    elif status == 404:
        code = ErrorCode.NOT_FOUND
        message = "Recurso não encontrado."
    elif 400 <= status < 500:
        code = ErrorCode.VALIDATION
        message = backend_msg or f"Requisição inválida ({status})"
    elif status >= 500:
        code = ErrorCode.SERVER_ERROR
        message = "Erro no servidor do ClickUp. Tente novamente mais tarde."
    else:
        code = ErrorCode.UNKNOWN
        message = f"Erro inesperado da API ({status})"

    logger.error(f"{method} {path} -> {status} [{code.value}] {backend_msg}")
    return ClickUpServiceError(message, code, data=payload, status=status, context=context, rate_limit=rate_limit)


class ClickUpClient:
    """Cliente HTTP assíncrono, um por conjunto de credenciais."""

    def __init__(
        self,
        api_token: str,
        team_id: str,
        rate_limiter: Optional[RateLimiter] = None,
        metrics: Optional[Metrics] = None,
        base_url: str = config.API_BASE_URL,
        timeout: float = config.REQUEST_TIMEOUT
    ):
        self.api_token = api_token
        self.team_id = team_id
        self.metrics = metrics if metrics is not None else Metrics()
        self.rate_limiter = rate_limiter if rate_limiter is not None else RateLimiter(metrics=self.metrics)
        if self.rate_limiter.metrics is None:
            self.rate_limiter.metrics = self.metrics
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http_client: Optional[httpx.AsyncClient] = None

    def get_headers(self) -> Dict[str, str]:
        """
        Retorna headers para autenticação na API.

        Raises:
            ConfigurationError: Se o token não está configurado
        """
        if not self.api_token:
            raise ConfigurationError(
                "CLICKUP_API_TOKEN não configurado! "
                "Obtenha em: ClickUp → Settings → Apps → API Token"
            )
        return {
            "Authorization": self.api_token,
            "Content-Type": "application/json"
        }

    async def get_http_client(self) -> httpx.AsyncClient:
        """Retorna cliente HTTP com connection pooling."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=self.timeout,
                limits=httpx.Limits(max_keepalive_connections=10, max_connections=20)
            )
        return self._http_client

    async def aclose(self) -> None:
        if self._http_client is not None and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def _send(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Dict[str, Any]] = None
    ) -> Any:
        """Executa uma única requisição HTTP (sem fila, sem retry)."""
        client = await self.get_http_client()
        headers = self.get_headers()
        self.metrics.record_api_call()

        try:
            response = await client.request(
                method=method,
                url=f"{self.base_url}{path}",
                headers=headers,
                params=params,
                json=json_data
            )
        except httpx.TimeoutException as e:
            logger.error(f"Timeout em {method} {path}")
            raise ClickUpServiceError(
                "A requisição excedeu o tempo limite. Tente novamente.",
                ErrorCode.NETWORK_ERROR,
                context={"method": method, "path": path}
            ) from e
        except httpx.TransportError as e:
            logger.error(f"Erro de rede em {method} {path}: {e}")
            raise ClickUpServiceError(
                "Erro de rede. Verifique a conexão e tente novamente.",
                ErrorCode.NETWORK_ERROR,
                context={"method": method, "path": path}
            ) from e

        rate_limit = parse_rate_limit_headers(response.headers)
        self.rate_limiter.observe(rate_limit)

        if response.status_code >= 400:
            raise classify_response(response, method, path, rate_limit)

        if response.status_code == 204 or not response.content:
            return {}

        try:
            return response.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise ClickUpServiceError(
                "Resposta inesperada em texto da API",
                ErrorCode.UNKNOWN,
                data=response.text,
                status=response.status_code,
                context={"method": method, "path": path}
            ) from e

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Faz requisição à API do ClickUp com rate limiting.

        Args:
            method: Método HTTP (GET, POST, PUT, DELETE)
            path: Endpoint da API (sem base URL)
            params: Query parameters
            json_data: Dados JSON para POST/PUT

        Returns:
            Resposta decodificada do JSON ({} para respostas vazias)

        Raises:
            ClickUpServiceError: Erro classificado (RATE_LIMIT é tratado pela fila)
        """
        logger.debug(f"API {method} {path}")
        with self.metrics.measure_latency(f"{method} {path.split('/')[1] if '/' in path else path}"):
            return await self.rate_limiter.execute(
                lambda: self._send(method, path, params, json_data)
            )

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json_data: Optional[Dict[str, Any]] = None, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request("POST", path, params=params, json_data=json_data or {})

    async def put(self, path: str, json_data: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request("PUT", path, json_data=json_data or {})

    async def delete(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request("DELETE", path, params=params)
