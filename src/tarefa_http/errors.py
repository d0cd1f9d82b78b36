"""Hierarquia de erros do tarefa_http."""


class TarefaHTTPError(Exception):
    """Erro base de todas as falhas reportadas pela biblioteca."""


class MalformedRequestError(TarefaHTTPError, ValueError):
    """URL ou requisição inválida; nenhuma tarefa é criada."""


class ParameterEncodingError(TarefaHTTPError):
    """Falha ao serializar os parâmetros de uma requisição."""


class TaskCancelledError(TarefaHTTPError):
    """A tarefa foi cancelada antes de terminar."""

    def __init__(self, task_id: int | None = None):
        self.task_id = task_id
        super().__init__(
            "Tarefa cancelada" if task_id is None else f"Tarefa {task_id} cancelada"
        )


class TransportError(TarefaHTTPError):
    """Falha reportada pela camada de transporte (rede, protocolo, disco)."""


class ResponseSerializationError(TarefaHTTPError):
    """Falha ao converter os bytes recebidos no tipo solicitado."""


class DownloadMoveError(TarefaHTTPError, OSError):
    """Não foi possível mover o arquivo baixado para o destino final."""
