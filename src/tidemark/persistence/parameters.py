"""Table-scoped access to workflow parameters over an IParameterStore."""

from __future__ import annotations

from tidemark.core.exceptions import ParameterNotFoundError
from tidemark.core.protocols import IParameterStore
from tidemark.models.workflow import ParameterName, WorkflowParameters, parameter_key


class WorkflowParameterRepository:
    """Reads and writes the workflow markers of a single table."""

    def __init__(self, store: IParameterStore, table_name: str) -> None:
        self._store = store
        self._table_name = table_name

    @property
    def table_name(self) -> str:
        return self._table_name

    def key(self, name: ParameterName) -> str:
        return parameter_key(self._table_name, name)

    def read_raw(self) -> dict[ParameterName, str]:
        """Return every parameter that exists; missing ones are omitted."""
        raw: dict[ParameterName, str] = {}
        for name in ParameterName:
            try:
                raw[name] = self._store.get(self.key(name))
            except ParameterNotFoundError:
                continue
        return raw

    def load(self) -> WorkflowParameters:
        return WorkflowParameters.from_raw(self.read_raw())

    def put(self, name: ParameterName, value: str) -> None:
        self._store.put(self.key(name), value)

    def delete(self, name: ParameterName) -> None:
        self._store.delete(self.key(name))
