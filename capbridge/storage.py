"""JSON file persistence for the exposure ledger."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from importlib import resources
from pathlib import Path
from typing import Any

from jsonschema import ValidationError, validators

from capbridge.core.errors import LedgerLoadError
from capbridge.core.ledger import ExposureLedger

LOGGER = logging.getLogger(__name__)


def _load_schema_validator() -> Any:
    schema_text = resources.files("capbridge").joinpath("schemas/ledger.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


class JsonLedgerStore:
    """Reads and writes the ledger as one JSON object of booleans."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def read(self) -> dict[str, bool]:
        if not self.path.exists():
            return {}
        try:
            content = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise LedgerLoadError(f"Could not read exposure ledger {self.path}: {exc}") from exc
        try:
            data = json.loads(content) if content.strip() else {}
        except json.JSONDecodeError as exc:
            raise LedgerLoadError(f"Invalid JSON in exposure ledger {self.path}: {exc}") from exc
        try:
            _load_schema_validator().validate(data)
        except ValidationError as exc:
            raise LedgerLoadError(f"Exposure ledger {self.path} is malformed: {exc.message}") from exc
        return data

    def write(self, snapshot: dict[str, bool]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".exposed-", suffix=".json", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(snapshot, handle, indent=2, sort_keys=True)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        LOGGER.debug("saved exposure ledger with %d entries to %s", len(snapshot), self.path)


def load_ledger(path: Path) -> ExposureLedger:
    store = JsonLedgerStore(path)
    return ExposureLedger(store.read(), on_save=store.write)
