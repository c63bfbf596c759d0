"""Custom SQLAlchemy column types for IHHT storage."""

import json

from typing import Any

from sqlalchemy import Text, TypeDecorator


class ValidatedJSON(TypeDecorator[dict[str, Any]]):
    """
    A JSON text column that rejects unserializable values on write.

    Example:
        class AdaptiveEventRecord(Base):
            data = mapped_column(ValidatedJSON, default=dict)
    """

    impl = Text
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Any) -> str | None:
        """
        Serialize before storing.

        Raises:
            ValueError: If value cannot be serialized to JSON
        """
        if value is None:
            return None

        try:
            return json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise ValueError(
                f"Cannot serialize {type(value).__name__} to JSON: {e}"
            ) from e

    def process_result_value(self, value: str | None, dialect: Any) -> Any:
        """
        Deserialize after loading. Missing values come back as {}.

        Raises:
            ValueError: If the stored text is not valid JSON
        """
        if value is None:
            return {}

        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            raise ValueError(f"Stored value is not valid JSON: {value[:100]!r}") from e
