"""Tarefas HTTP com delegates por tarefa, codificação de parâmetros e respostas tipadas."""

from .core import Endpoint, SessionConfig, SessionManager, Task, TaskResponse, default_manager
from .encoding import CustomEncoding, JSONEncoding, PropertyListEncoding, URLEncoding
from .errors import (
    DownloadMoveError,
    MalformedRequestError,
    ParameterEncodingError,
    ResponseSerializationError,
    TarefaHTTPError,
    TaskCancelledError,
    TransportError,
)
from .http import ConcurrentTaskRunner
from .models import Credential, HTTPMethod, Request, ResponseDisposition

__version__ = "0.1.0"

__all__ = [
    "ConcurrentTaskRunner",
    "Credential",
    "CustomEncoding",
    "DownloadMoveError",
    "Endpoint",
    "HTTPMethod",
    "JSONEncoding",
    "MalformedRequestError",
    "ParameterEncodingError",
    "PropertyListEncoding",
    "Request",
    "ResponseDisposition",
    "ResponseSerializationError",
    "SessionConfig",
    "SessionManager",
    "Task",
    "TaskCancelledError",
    "TaskResponse",
    "TarefaHTTPError",
    "TransportError",
    "URLEncoding",
    "default_manager",
]
