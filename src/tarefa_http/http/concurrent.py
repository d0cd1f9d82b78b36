"""Execução de várias tarefas concorrentes com limitação via asyncio.Semaphore."""

import asyncio
from collections.abc import Iterable
from typing import TYPE_CHECKING

import httpx

from ..models import Request
from ..utils import get_logger

if TYPE_CHECKING:
    from ..core.manager import SessionManager
    from ..core.task import TaskResponse
    from ..core.transforms import ResponseTransform

logger = get_logger(__name__)

RequestLike = Request | httpx.Request | str | httpx.URL


class ConcurrentTaskRunner:
    """
    Submete requisições a um ``SessionManager`` a partir de código asyncio.

    O pool do transporte já executa as tarefas em paralelo; esta classe
    apenas limita quantas ficam em andamento ao mesmo tempo.
    """

    def __init__(self, manager: "SessionManager", max_concurrent: int = 10):
        """
        Args:
            manager: Gerenciador que cria as tarefas
            max_concurrent: Número máximo de tarefas em andamento (controlado por asyncio.Semaphore)
        """
        if max_concurrent <= 0:
            raise ValueError(f"max_concurrent deve ser positivo: {max_concurrent}")
        self.manager = manager
        self.semaphore = asyncio.Semaphore(max_concurrent)

    async def fetch(
        self, request: RequestLike, transform: "ResponseTransform | None" = None
    ) -> "TaskResponse":
        """
        Executa uma requisição respeitando o limite do semáforo.

        Raises:
            MalformedRequestError: Se a requisição for inválida
        """
        async with self.semaphore:
            task = self.manager.send(request)
            if not self.manager.start_immediately:
                task.resume()
            return await task.aresponse(transform)

    async def fetch_all(
        self,
        requests: Iterable[RequestLike],
        transform: "ResponseTransform | None" = None,
    ) -> list["TaskResponse | None"]:
        """
        Executa várias requisições concorrentes.

        Args:
            requests: Requisições ou URLs
            transform: Transformação aplicada a cada resposta

        Returns:
            Lista de respostas na mesma ordem da entrada; requisições que nem
            chegaram a virar tarefa aparecem como None
        """
        requests = list(requests)
        results = await asyncio.gather(
            *(self.fetch(request, transform) for request in requests),
            return_exceptions=True,
        )

        # Processa resultados, convertendo exceções em None
        processed_results: list["TaskResponse | None"] = []
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"Erro ao criar tarefa concorrente: {result}")
                processed_results.append(None)
            else:
                processed_results.append(result)

        successful = len([r for r in processed_results if r is not None and r.ok])
        logger.info(f"Concluídas {successful}/{len(requests)} tarefas com sucesso")
        return processed_results
