import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import orjson
from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError

logger = logging.getLogger(__name__)

OK = "ok"
NEEDS_REVIEW = "needs_review"
ERROR = "error"


@dataclass
class ValidationResult:
    valid: bool = True
    errors: list = field(default_factory=list)

    @property
    def status(self) -> str:
        return OK if self.valid else NEEDS_REVIEW


class CapsuleValidator:
    """
    Structural contract gate, compiled once. A disabled validator (no
    contract available) passes every envelope.
    """

    def __init__(self, schema: Optional[dict] = None):
        self.validator = Draft7Validator(schema) if schema is not None else None

    @property
    def enabled(self) -> bool:
        return self.validator is not None

    @classmethod
    def disabled(cls) -> "CapsuleValidator":
        return cls(None)

    @classmethod
    def from_path(cls, path) -> "CapsuleValidator":
        path = Path(path)
        try:
            schema = orjson.loads(path.read_bytes())
            Draft7Validator.check_schema(schema)
        except (OSError, orjson.JSONDecodeError, SchemaError) as e:
            logger.warning(f"[SCHEMA] validation disabled, cannot load contract {path}: {e}")
            return cls.disabled()
        logger.info(f"[SCHEMA] contract loaded from {path}")
        return cls(schema)

    def validate(self, envelope: dict) -> ValidationResult:
        if not self.enabled:
            return ValidationResult()
        errors = [
            {"path": "/" + "/".join(str(p) for p in err.absolute_path), "message": err.message}
            for err in self.validator.iter_errors(envelope)
        ]
        errors.sort(key=lambda e: (e["path"], e["message"]))
        return ValidationResult(valid=not errors, errors=errors)
