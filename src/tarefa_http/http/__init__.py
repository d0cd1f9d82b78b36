"""Módulo HTTP: sessão de transporte sobre httpx e execução concorrente."""

from .cache import ResponseCache
from .concurrent import ConcurrentTaskRunner
from .events import SessionEvents
from .resume import ResumeData
from .session import SessionTask, TaskKind, TaskState, TransportSession

__all__ = [
    "ConcurrentTaskRunner",
    "ResponseCache",
    "ResumeData",
    "SessionEvents",
    "SessionTask",
    "TaskKind",
    "TaskState",
    "TransportSession",
]
