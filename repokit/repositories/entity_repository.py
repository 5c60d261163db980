"""
Typed entity access on top of BaseRepository.

An EntityRepository is parameterized by an EntityMapper: two pure
conversion functions between backend rows and entity dataclasses plus a
validator. Writes are validated locally before any backend call, and
updates re-read the current entity so the merged result is validated,
not just the patch.
"""

from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Generic,
    List,
    Mapping,
    Optional,
    Tuple,
    Type,
    TypeVar,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

import structlog

from ..domain.entities import Entity, EntityType
from ..domain.exceptions import EntityValidationError
from .base_repository import BaseRepository
from .query import DataRepository, RepositoryQuery, Row
from .response import (
    CREATE_ERROR,
    DELETE_ERROR,
    NOT_FOUND,
    QUERY_ERROR,
    UPDATE_ERROR,
    RepositoryResponse,
    fail,
    fail_with,
    ok,
)

logger = structlog.get_logger(__name__)

E = TypeVar("E", bound=Entity)

FieldErrors = Dict[str, str]
TagLookup = Callable[[EntityType, Any], Awaitable[RepositoryResponse[List[Any]]]]


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp; ``Z`` is accepted as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _unwrap_optional(annotation: Any) -> Any:
    if get_origin(annotation) is Union:
        args = [arg for arg in get_args(annotation) if arg is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def require_name(entity: Entity) -> FieldErrors:
    """Default validator: every entity needs a name."""
    if not entity.name or not entity.name.strip():
        return {"name": "Name is required"}
    return {}


@dataclass(frozen=True)
class EntityMapper(Generic[E]):
    """
    Conversion and validation functions for one entity kind.

    Attributes:
        entity_type: Discriminator forced onto every written entity
        entity_class: Dataclass built from partial field mappings
        table_name: Default backing table
        to_entity: Backend row to entity
        from_entity: Entity to writable backend row
        validate: Entity to field errors (empty when valid)
        select: Column list used for reads (may embed relations)
    """

    entity_type: EntityType
    entity_class: Type[E]
    table_name: str
    to_entity: Callable[[Row], E]
    from_entity: Callable[[E], Row]
    validate: Callable[[E], FieldErrors] = require_name
    select: str = "*"


class EntityRepository(BaseRepository, Generic[E]):
    """Repository returning typed entities instead of raw rows."""

    def __init__(
        self,
        source: DataRepository,
        mapper: EntityMapper[E],
        tag_lookup: Optional[TagLookup] = None,
        **options: Any,
    ):
        """
        Initialize repository.

        Args:
            source: Repository executing the query chains
            mapper: Conversion and validation functions
            tag_lookup: Async collaborator returning an entity's tags
            **options: RepositoryOptions overrides
        """
        options.setdefault("default_select", mapper.select)
        super().__init__(source, **options)
        self.mapper = mapper
        self.entity_type = mapper.entity_type
        self.tag_lookup = tag_lookup

    # Mapping boundary

    def convert_to_entity(self, record: Row) -> E:
        return self.mapper.to_entity(record)

    def convert_from_entity(self, entity: E) -> Row:
        return self.mapper.from_entity(entity)

    def validate_entity(self, entity: E) -> FieldErrors:
        """Return field errors for an entity; empty when it is valid."""
        errors = dict(self.mapper.validate(entity))
        if entity.entity_type != self.entity_type:
            errors["entity_type"] = f"Entity type must be {self.entity_type.value}"
        return errors

    def _build_entity(self, entity: Union[E, Mapping[str, Any]]) -> E:
        if isinstance(entity, Entity):
            return replace(entity, entity_type=self.entity_type)
        values = dict(entity)
        values["entity_type"] = self.entity_type
        return self.mapper.entity_class(**values)

    def _unknown_fields(self, values: Mapping[str, Any]) -> FieldErrors:
        known = {f.name for f in fields(self.mapper.entity_class)}
        return {name: "Unknown field" for name in values if name not in known}

    def _coerce_fields(self, values: Mapping[str, Any]) -> Tuple[Dict[str, Any], FieldErrors]:
        """Convert wire-format values (ISO timestamps, numeric strings) to field types."""
        hints = get_type_hints(self.mapper.entity_class)
        coerced: Dict[str, Any] = {}
        errors: FieldErrors = {}
        for name, value in values.items():
            target = _unwrap_optional(hints.get(name))
            try:
                if target is datetime and isinstance(value, str):
                    value = parse_datetime(value)
                elif target is Decimal and isinstance(value, (str, int, float)) and not isinstance(value, bool):
                    value = Decimal(str(value))
                elif target is int and isinstance(value, str):
                    value = int(value)
            except ValueError:
                errors[name] = f"Invalid {target.__name__} value"
                continue
            except InvalidOperation:
                errors[name] = "Invalid decimal value"
                continue
            coerced[name] = value
        return coerced, errors

    def _validation_failure(self, operation: str, errors: FieldErrors, **context: Any):
        logger.error(
            "Entity validation failed",
            repository=type(self).__name__,
            table=self.table_name,
            operation=operation,
            entity=self.entity_type.value,
            errors=errors,
            **context,
        )
        return fail(EntityValidationError(self.entity_type.value, errors))

    def _active(self, query: RepositoryQuery) -> RepositoryQuery:
        if self.options.soft_delete:
            return query.is_(self.options.deleted_at_column, None)
        return query

    # Writes

    async def create_entity(self, entity: Union[E, Mapping[str, Any]]) -> RepositoryResponse[E]:
        """
        Validate and insert an entity.

        Args:
            entity: Entity or mapping of entity field values

        Returns:
            Response with the entity built from the inserted row
        """
        return await self.monitor_performance("create_entity", lambda: self._create(entity))

    async def _create(self, entity: Union[E, Mapping[str, Any]]) -> RepositoryResponse[E]:
        try:
            if isinstance(entity, Mapping):
                unknown = self._unknown_fields(entity)
                if unknown:
                    return self._validation_failure("create_entity", unknown)
                entity, errors = self._coerce_fields(entity)
                if errors:
                    return self._validation_failure("create_entity", errors)

            candidate = self._build_entity(entity)
            errors = self.validate_entity(candidate)
            if errors:
                return self._validation_failure("create_entity", errors)

            record = self.convert_from_entity(candidate)
            response = await self.insert(record).single()
            if response.is_error():
                return response
            return ok(self.convert_to_entity(response.data))
        except Exception as e:
            self.handle_error("create_entity", e)
            return fail_with(
                CREATE_ERROR, f"Failed to create {self.entity_type.value}", original=e
            )

    async def update_entity(self, id: Any, updates: Mapping[str, Any]) -> RepositoryResponse[E]:
        """
        Merge updates into the stored entity, validate and write it.

        Args:
            id: Entity ID
            updates: Entity field values to change

        Returns:
            Response with the entity built from the updated row
        """
        return await self.monitor_performance(
            "update_entity", lambda: self._update(id, updates), id=id
        )

    async def _update(self, id: Any, updates: Mapping[str, Any]) -> RepositoryResponse[E]:
        try:
            unknown = self._unknown_fields(updates)
            if unknown:
                return self._validation_failure("update_entity", unknown, id=id)
            updates, errors = self._coerce_fields(updates)
            if errors:
                return self._validation_failure("update_entity", errors, id=id)

            current = await self.get_entity(id)
            if current.is_error():
                return current
            if current.data is None:
                return fail_with(
                    NOT_FOUND,
                    f"{self.entity_type.value.capitalize()} with ID {id} not found",
                    details={"id": id},
                )

            merged = replace(current.data, **dict(updates), entity_type=self.entity_type)
            errors = self.validate_entity(merged)
            if errors:
                return self._validation_failure("update_entity", errors, id=id)

            record = self.convert_from_entity(merged)
            response = await self.update(record).eq(self.options.id_field, id).single()
            if response.is_error():
                return response
            return ok(self.convert_to_entity(response.data))
        except Exception as e:
            self.handle_error("update_entity", e, id=id)
            return fail_with(
                UPDATE_ERROR, f"Failed to update {self.entity_type.value}", original=e
            )

    async def delete_entity(self, id: Any) -> RepositoryResponse[bool]:
        """
        Delete an entity, or stamp its deleted-at column when soft delete is on.

        Returns:
            Response with True, or ``not_found`` when no row matched
        """
        return await self.monitor_performance("delete_entity", lambda: self._delete(id), id=id)

    async def _delete(self, id: Any) -> RepositoryResponse[bool]:
        try:
            if self.options.soft_delete:
                stamp = {self.options.deleted_at_column: datetime.now(timezone.utc).isoformat()}
                query = self._active(self.update(stamp).eq(self.options.id_field, id))
            else:
                query = self.delete().eq(self.options.id_field, id)

            response = await query.execute()
            if response.is_error():
                return response
            if not response.data:
                return fail_with(
                    NOT_FOUND,
                    f"{self.entity_type.value.capitalize()} with ID {id} not found",
                    details={"id": id},
                )
            return ok(True)
        except Exception as e:
            self.handle_error("delete_entity", e, id=id)
            return fail_with(
                DELETE_ERROR, f"Failed to delete {self.entity_type.value}", original=e
            )

    # Reads

    async def query_entities(
        self,
        operation: str,
        build: Callable[[RepositoryQuery], RepositoryQuery],
        one: bool = False,
        **context: Any,
    ) -> RepositoryResponse:
        """
        Run a read chain and convert its rows to entities.

        Args:
            operation: Name used in logs, metrics and the error message
            build: Adds filters/order/pagination to a select chain
            one: Use ``maybe_single`` instead of ``execute``
            **context: Extra log fields

        Returns:
            Response with an entity (or None) when ``one``, else a list
        """

        async def run() -> RepositoryResponse:
            try:
                query = build(self._active(self.select()))
                response = await (query.maybe_single() if one else query.execute())
                if response.is_error():
                    return response
                if one:
                    entity = self.convert_to_entity(response.data) if response.data else None
                    return ok(entity)
                return ok(
                    [self.convert_to_entity(row) for row in response.data or []],
                    count=response.count,
                )
            except Exception as e:
                self.handle_error(operation, e, **context)
                return fail_with(
                    QUERY_ERROR,
                    f"Failed to {operation.replace('_', ' ')}",
                    details=context or None,
                    original=e,
                )

        return await self.monitor_performance(operation, run, **context)

    async def get_entity(self, id: Any) -> RepositoryResponse[Optional[E]]:
        """Get one entity by ID; ``data`` is None when it does not exist."""
        return await self.query_entities(
            "get_entity", lambda q: q.eq(self.options.id_field, id), one=True, id=id
        )

    async def list_entities(self) -> RepositoryResponse[List[E]]:
        """List every (non-deleted) entity of the table."""
        return await self.query_entities("list_entities", lambda q: q)

    async def find_by(self, field: str, value: Any) -> RepositoryResponse[List[E]]:
        return await self.query_entities(
            "find_by", lambda q: q.eq(field, value), field=field, value=value
        )

    async def find_one_by(self, field: str, value: Any) -> RepositoryResponse[Optional[E]]:
        return await self.query_entities(
            "find_one_by", lambda q: q.eq(field, value), one=True, field=field, value=value
        )

    async def search(self, field: str, term: str) -> RepositoryResponse[List[E]]:
        """Case-insensitive substring search on one column."""
        return await self.query_entities(
            "search", lambda q: q.ilike(field, f"%{term}%"), field=field, term=term
        )

    async def get_with_tags(self, id: Any) -> RepositoryResponse[Optional[E]]:
        """
        Get an entity together with its tags.

        A failed or missing entity lookup is returned untouched. A failing
        tag lookup yields an entity with no tags.
        """
        response = await self.get_entity(id)
        if response.is_error() or response.data is None:
            return response
        if self.tag_lookup is None:
            return response

        try:
            tags_response = await self.tag_lookup(self.entity_type, id)
        except Exception as e:
            logger.warning(
                "Tag lookup raised, returning entity without tags",
                entity=self.entity_type.value,
                id=id,
                error=str(e),
            )
            return ok(replace(response.data, tags=()))

        if tags_response.is_error():
            logger.warning(
                "Tag lookup failed, returning entity without tags",
                entity=self.entity_type.value,
                id=id,
                error=tags_response.get_error_message(),
            )
            return ok(replace(response.data, tags=()))

        return ok(replace(response.data, tags=tuple(tags_response.data or ())))
