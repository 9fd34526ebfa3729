"""Transform registry for converting cell values between column types."""

import re
import logging
from typing import Any, Callable, Dict, Optional
from dateutil import parser as date_parser

from ..errors import ConfigurationError
from ..models.record import (
    ABSENT,
    Absent,
    CellValue,
    ListValue,
    MonetaryAmount,
    PersonReference,
    Scalar,
    StructuredReference,
)
from ..models.schema import ColumnType, TransformDirective, TransformKind

logger = logging.getLogger(__name__)

Transform = Callable[[CellValue], CellValue]

TEXT_TYPES = {ColumnType.TEXT.value, ColumnType.LINK.value, ColumnType.EMAIL.value}
NUMBER_TYPES = {ColumnType.NUMBER.value, ColumnType.CURRENCY.value, ColumnType.PERCENT.value}
DATE_TYPES = {ColumnType.DATE.value, ColumnType.DATETIME.value}

TRUE_STRINGS = {"true", "yes", "y", "1", "checked", "x"}
FALSE_STRINGS = {"false", "no", "n", "0", "unchecked", ""}


def _map_scalars(value: CellValue, func: Callable[[Any], Any]) -> CellValue:
    """Apply func to scalar values (recursing into lists); None results become ABSENT."""
    if isinstance(value, Scalar):
        result = func(value.value)
        return ABSENT if result is None else Scalar(result)
    if isinstance(value, ListValue):
        items = [_map_scalars(item, func) for item in value.items]
        return ListValue([item for item in items if not isinstance(item, Absent)])
    return value


def _parse_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        cleaned = re.sub(r"[\s,$€£%]", "", value)
        if not cleaned:
            return None
        try:
            number = float(cleaned)
        except ValueError:
            return None
        return int(number) if number.is_integer() and "." not in cleaned else number
    return None


class TransformRegistry:
    """
    Resolves transform directives into callables over cell values.

    Supports:
    - Identity
    - Type coercion by destination column type (lenient: unconvertible
      values pass through unchanged)
    - Built-in named transforms
    - Custom named transforms registered at runtime
    """

    def __init__(self):
        """Initialize the registry."""
        self._custom_transforms: Dict[str, Callable] = {}
        self._builtin_transforms = self._register_builtin_transforms()

    def _register_builtin_transforms(self) -> Dict[str, Callable]:
        """Register all built-in named transforms."""
        return {
            "select_to_lookup": self._transform_reference_to_name,
            "lookup_to_select": self._transform_reference_to_name,
            "lookup_to_text": self._transform_reference_to_name,
            "person_to_text": self._transform_person_to_email,
            "prefix_add": self._transform_prefix_add,
            "prefix_strip": self._transform_prefix_strip,
            "truncate": self._transform_truncate,
            "uppercase": self._transform_uppercase,
            "lowercase": self._transform_lowercase,
            "enum_map": self._transform_enum_map,
            "boolean_to_enum": self._transform_boolean_to_enum,
            "default": self._transform_default,
            "multiply": self._transform_multiply,
            "divide": self._transform_divide,
            "clean_phone": self._transform_clean_phone,
        }

    def register_transform(self, name: str, func: Callable) -> None:
        """
        Register a custom named transform.

        Args:
            name: Name used in directives
            func: Callable taking ``(value, options)`` and returning a CellValue
        """
        self._custom_transforms[name] = func

    def has_transform(self, name: str) -> bool:
        return name in self._custom_transforms or name in self._builtin_transforms

    def resolve(self, directive: TransformDirective) -> Transform:
        """
        Resolve a directive into a callable.

        Args:
            directive: Directive attached to a column mapping

        Returns:
            Callable mapping a CellValue to a CellValue

        Raises:
            ConfigurationError: If a named transform is not registered
        """
        if directive.kind == TransformKind.IDENTITY:
            return self._transform_identity

        if directive.kind == TransformKind.TYPE_COERCE:
            target_type = directive.target_type or ColumnType.TEXT.value
            return lambda value: self.coerce(value, target_type)

        name = directive.name or ""
        func = self._custom_transforms.get(name) or self._builtin_transforms.get(name)
        if func:
            options = dict(directive.options)
            return lambda value: func(value, options)

        # A {from, to} pair with no dedicated transform falls back to coercion
        target_type = directive.options.get("to")
        if target_type:
            logger.warning(f"No transform named '{name}', coercing to '{target_type}' instead")
            return lambda value: self.coerce(value, target_type)

        raise ConfigurationError(f"Unknown transform: {name}", {"transform": name})

    def coerce(self, value: CellValue, target_type: str) -> CellValue:
        """
        Coerce a value towards a destination column type.

        Args:
            value: Source cell value
            target_type: Destination column format type

        Returns:
            Coerced value, or the input unchanged if it cannot be converted
        """
        if isinstance(value, Absent):
            return value

        if target_type in TEXT_TYPES:
            return self._coerce_text(value)
        if target_type in NUMBER_TYPES:
            return self._coerce_number(value, target_type)
        if target_type in DATE_TYPES:
            return _map_scalars(value, lambda v: self._to_date(v, target_type))
        if target_type == ColumnType.CHECKBOX.value:
            return _map_scalars(value, self._to_bool)
        return value

    # Coercions

    def _coerce_text(self, value: CellValue) -> CellValue:
        if isinstance(value, MonetaryAmount):
            return Scalar(str(value.amount)) if value.amount is not None else value

        def convert(v: Any) -> str:
            if isinstance(v, bool):
                return "true" if v else "false"
            return v if isinstance(v, str) else str(v)

        return _map_scalars(value, convert)

    def _coerce_number(self, value: CellValue, target_type: str) -> CellValue:
        if isinstance(value, MonetaryAmount):
            if target_type == ColumnType.CURRENCY.value:
                return value
            number = _parse_number(value.amount)
            return Scalar(number) if number is not None else value

        def convert(v: Any) -> Any:
            number = _parse_number(v)
            return v if number is None else number

        return _map_scalars(value, convert)

    def _to_date(self, value: Any, target_type: str) -> Any:
        if not isinstance(value, str) or not value.strip():
            return value
        try:
            parsed = date_parser.parse(value)
        except (ValueError, OverflowError):
            logger.debug(f"Could not parse '{value}' as a date, leaving unchanged")
            return value
        if target_type == ColumnType.DATE.value:
            return parsed.date().isoformat()
        return parsed.isoformat()

    def _to_bool(self, value: Any) -> Any:
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return value != 0
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in TRUE_STRINGS:
                return True
            if lowered in FALSE_STRINGS:
                return False
        return value

    # Named transforms

    def _transform_identity(self, value: CellValue) -> CellValue:
        return value

    def _transform_reference_to_name(self, value: CellValue, options: Dict) -> CellValue:
        """Replace row references with their display name (lookups match by name)."""
        if isinstance(value, StructuredReference):
            name = value.name or value.display_text
            return Scalar(name) if name else value
        if isinstance(value, ListValue):
            return ListValue([self._transform_reference_to_name(item, options) for item in value.items])
        return value

    def _transform_person_to_email(self, value: CellValue, options: Dict) -> CellValue:
        """Replace a person with their email (or name)."""
        if isinstance(value, PersonReference):
            text = value.email or value.name
            return Scalar(text) if text else value
        if isinstance(value, ListValue):
            return ListValue([self._transform_person_to_email(item, options) for item in value.items])
        return value

    def _transform_prefix_add(self, value: CellValue, options: Dict) -> CellValue:
        """Add a prefix to the value."""
        prefix = options.get("prefix", "")
        return _map_scalars(value, lambda v: f"{prefix}{v}")

    def _transform_prefix_strip(self, value: CellValue, options: Dict) -> CellValue:
        """Strip a prefix and optionally add a new one."""
        prefix = options.get("prefix", "")
        new_prefix = options.get("new_prefix", "")

        def strip(v: Any) -> Any:
            text = str(v)
            if prefix and text.startswith(prefix):
                text = text[len(prefix):]
            return f"{new_prefix}{text}"

        return _map_scalars(value, strip)

    def _transform_truncate(self, value: CellValue, options: Dict) -> CellValue:
        """Truncate to max length."""
        max_length = options.get("max_length", 255)
        return _map_scalars(value, lambda v: str(v)[:max_length])

    def _transform_uppercase(self, value: CellValue, options: Dict) -> CellValue:
        """Convert to uppercase."""
        return _map_scalars(value, lambda v: str(v).upper())

    def _transform_lowercase(self, value: CellValue, options: Dict) -> CellValue:
        """Convert to lowercase."""
        return _map_scalars(value, lambda v: str(v).lower())

    def _transform_enum_map(self, value: CellValue, options: Dict) -> CellValue:
        """Map value using a lookup table."""
        mapping = options.get("mapping", {})
        default = options.get("default")
        if isinstance(value, Absent):
            return Scalar(default) if default is not None else value
        return _map_scalars(value, lambda v: mapping.get(str(v), default if default is not None else v))

    def _transform_boolean_to_enum(self, value: CellValue, options: Dict) -> CellValue:
        """Convert boolean to enum value."""
        true_value = options.get("true_value") or options.get("true")
        false_value = options.get("false_value") or options.get("false")
        if isinstance(value, Absent):
            return Scalar(false_value) if false_value is not None else value

        def convert(v: Any) -> Any:
            flag = self._to_bool(v)
            if not isinstance(flag, bool):
                return v
            return true_value if flag else false_value

        return _map_scalars(value, convert)

    def _transform_default(self, value: CellValue, options: Dict) -> CellValue:
        """Return default value if source is empty."""
        if isinstance(value, Absent) and options.get("value") is not None:
            return Scalar(options["value"])
        return value

    def _transform_multiply(self, value: CellValue, options: Dict) -> CellValue:
        """Multiply numeric value."""
        multiplier = options.get("multiplier", 1)
        if isinstance(value, MonetaryAmount):
            value = self._coerce_number(value, ColumnType.NUMBER.value)

        def multiply(v: Any) -> Any:
            number = _parse_number(v)
            return v if number is None else number * multiplier

        return _map_scalars(value, multiply)

    def _transform_divide(self, value: CellValue, options: Dict) -> CellValue:
        """Divide numeric value."""
        divisor = options.get("divisor", 1)
        if divisor == 0:
            return value
        if isinstance(value, MonetaryAmount):
            value = self._coerce_number(value, ColumnType.NUMBER.value)

        def divide(v: Any) -> Any:
            number = _parse_number(v)
            return v if number is None else number / divisor

        return _map_scalars(value, divide)

    def _transform_clean_phone(self, value: CellValue, options: Dict) -> CellValue:
        """Clean phone number formatting."""

        def clean(v: Any) -> Any:
            phone = re.sub(r"[^\d+]", "", str(v))
            if phone and not phone.startswith("+") and len(phone) > 10:
                phone = f"+{phone}"
            return phone or None

        return _map_scalars(value, clean)
