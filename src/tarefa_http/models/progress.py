"""Contadores de progresso das tarefas."""

from dataclasses import dataclass


@dataclass
class Progress:
    """
    Progresso de uma métrica (bytes recebidos, gravados ou enviados).

    ``completed_unit_count`` só cresce; ``total_unit_count`` permanece None
    até o tamanho esperado ser conhecido pela resposta.
    """

    completed_unit_count: int = 0
    total_unit_count: int | None = None

    def update(self, completed: int, total: int | None = None) -> None:
        if total is not None and total >= 0:
            self.total_unit_count = total
        if completed > self.completed_unit_count:
            self.completed_unit_count = completed

    def reset(self, completed: int, total: int | None = None) -> None:
        """Reposiciona o contador (ex.: download retomado a partir de um offset)."""
        self.completed_unit_count = max(completed, 0)
        self.total_unit_count = total if total is not None and total >= 0 else None

    @property
    def fraction_completed(self) -> float | None:
        if not self.total_unit_count:
            return None
        return min(self.completed_unit_count / self.total_unit_count, 1.0)

    def __repr__(self) -> str:
        return f"<Progress {self.completed_unit_count}/{self.total_unit_count}>"
