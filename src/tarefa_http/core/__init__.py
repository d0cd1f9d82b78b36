"""Módulo core: gerenciador, roteador de eventos, delegates e tarefas."""

from .config import SessionConfig
from .delegates import (
    DataTaskDelegate,
    DelegateState,
    DownloadTaskDelegate,
    TaskDelegate,
    TaskHooks,
    UploadTaskDelegate,
)
from .endpoint import Endpoint
from .manager import SessionManager, default_manager
from .router import SessionEventRouter
from .task import Task, TaskResponse

__all__ = [
    "DataTaskDelegate",
    "DelegateState",
    "DownloadTaskDelegate",
    "Endpoint",
    "SessionConfig",
    "SessionEventRouter",
    "SessionManager",
    "Task",
    "TaskDelegate",
    "TaskHooks",
    "TaskResponse",
    "UploadTaskDelegate",
    "default_manager",
]
