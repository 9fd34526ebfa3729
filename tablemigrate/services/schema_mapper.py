"""Resolution of configured column names into source/destination column pairs."""

import logging
from typing import Any, Dict, List, Optional

from ..errors import ConfigurationError
from ..models.schema import ColumnDefinition, ColumnMapping, TransformDirective
from .transformer import TransformRegistry

logger = logging.getLogger(__name__)


class SchemaMapper:
    """
    Builds column mappings from table schemas and a name-to-name mapping table.

    Columns are dropped (never fatally) when they are calculated, skip-listed,
    unmapped, or when the configured destination column is missing or
    calculated. An empty result is a configuration error.
    """

    def __init__(
        self,
        column_mappings: Dict[str, str],
        skip_columns: Optional[List[str]] = None,
        transformations: Optional[Dict[str, Dict[str, Any]]] = None,
        registry: Optional[TransformRegistry] = None,
    ):
        """
        Initialize the mapper.

        Args:
            column_mappings: Source column name -> destination column name
            skip_columns: Source column names that are never migrated
            transformations: Source column name -> transform configuration,
                either ``{from, to}`` or ``{transform, options}``
            registry: Registry used to validate named transforms
        """
        self.column_mappings = dict(column_mappings)
        self.skip_columns = set(skip_columns or [])
        self.transformations = dict(transformations or {})
        self.registry = registry or TransformRegistry()

    def build(
        self,
        source_columns: List[ColumnDefinition],
        destination_columns: List[ColumnDefinition],
    ) -> List[ColumnMapping]:
        """
        Resolve the configured mapping against the two table schemas.

        Args:
            source_columns: Columns of the source table, in table order
            destination_columns: Columns of the destination table

        Returns:
            Column mappings in source column order

        Raises:
            ConfigurationError: If no column can be mapped, or a configured
                transform is unknown
        """
        destinations_by_name: Dict[str, ColumnDefinition] = {}
        for column in destination_columns:
            destinations_by_name.setdefault(column.name, column)

        mappings: List[ColumnMapping] = []

        for source in source_columns:
            if source.calculated:
                logger.debug(f"Skipping calculated source column: {source.name}")
                continue

            if source.name in self.skip_columns:
                logger.debug(f"Skipping column from skip list: {source.name}")
                continue

            destination_name = self.column_mappings.get(source.name)
            if not destination_name:
                logger.debug(f"No mapping configured for source column: {source.name}")
                continue

            destination = destinations_by_name.get(destination_name)
            if destination is None:
                logger.warning(
                    f"Destination column '{destination_name}' not found for source column '{source.name}'"
                )
                continue

            if destination.calculated:
                logger.warning(
                    f"Destination column '{destination_name}' is calculated, skipping source column '{source.name}'"
                )
                continue

            directive = self._resolve_directive(source, destination)
            # Fail on unknown named transforms before any row is touched
            self.registry.resolve(directive)

            mappings.append(ColumnMapping(source=source, destination=destination, directive=directive))

        if not mappings:
            raise ConfigurationError(
                "No valid column mappings found",
                {"configured": len(self.column_mappings), "source_columns": len(source_columns)},
            )

        self._log_plan(mappings)
        return mappings

    def _resolve_directive(
        self,
        source: ColumnDefinition,
        destination: ColumnDefinition,
    ) -> TransformDirective:
        """Pick the configured transform, else type coercion, else identity."""
        configured = self.transformations.get(source.name)
        if configured:
            if configured.get("transform"):
                return TransformDirective.named(configured["transform"], configured.get("options"))
            source_type = configured.get("from", source.format_type)
            target_type = configured.get("to", destination.format_type)
            return TransformDirective.named(
                f"{source_type}_to_{target_type}",
                {"from": source_type, "to": target_type},
            )

        if source.format_type != destination.format_type:
            return TransformDirective.type_coerce(destination.format_type)

        return TransformDirective.identity()

    def _log_plan(self, mappings: List[ColumnMapping]) -> None:
        logger.info(f"Mapped {len(mappings)} columns:")
        for mapping in mappings:
            logger.info(
                f"  {mapping.source.name} ({mapping.source.id}, {mapping.source.format_type}) -> "
                f"{mapping.destination.name} ({mapping.destination.id}, {mapping.destination.format_type})"
                f" [{mapping.directive.describe()}]"
            )
