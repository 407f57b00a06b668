"""Discovery item and query types shared by every source."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid as uuidlib


class QueryMethod(str, Enum):
    GET = "GET"
    LIST = "LIST"
    SEARCH = "SEARCH"


class Health(str, Enum):
    UNKNOWN = "UNKNOWN"
    OK = "OK"
    WARNING = "WARNING"
    ERROR = "ERROR"
    PENDING = "PENDING"


class ErrorType(str, Enum):
    NOTFOUND = "NOTFOUND"
    NOSCOPE = "NOSCOPE"
    TIMEOUT = "TIMEOUT"
    OTHER = "OTHER"


@dataclass
class Query:
    """A request for items, as sent by the discovery engine."""
    type: str
    method: QueryMethod
    query: str = ""
    scope: str = "*"
    uuid: str = field(default_factory=lambda: str(uuidlib.uuid4()))
    ignore_cache: bool = False
    deadline: Optional[float] = None  # epoch seconds
    subject: Optional[str] = None     # where responses are published

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'type': self.type,
            'method': self.method.value,
            'query': self.query,
            'scope': self.scope,
            'uuid': self.uuid,
            'ignoreCache': self.ignore_cache,
        }
        if self.deadline is not None:
            result['deadline'] = self.deadline
        if self.subject is not None:
            result['subject'] = self.subject
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Query":
        """
        Build a query from its wire representation.

        Raises:
            ValueError: If the type or method is missing or invalid
        """
        if not data.get('type'):
            raise ValueError("query type cannot be blank")

        try:
            method = QueryMethod(str(data.get('method', '')).upper())
        except ValueError:
            raise ValueError(f"invalid query method: {data.get('method')!r}")

        return cls(
            type=data['type'],
            method=method,
            query=data.get('query', ''),
            scope=data.get('scope', '*'),
            uuid=data.get('uuid') or str(uuidlib.uuid4()),
            ignore_cache=bool(data.get('ignoreCache', False)),
            deadline=data.get('deadline'),
            subject=data.get('subject'),
        )


@dataclass
class BlastPropagation:
    """Whether changes flow into (in_) or out of (out) the linking item."""
    in_: bool
    out: bool

    def to_dict(self) -> Dict[str, bool]:
        return {'in': self.in_, 'out': self.out}


@dataclass
class LinkedItemQuery:
    query: Query
    blast_propagation: BlastPropagation

    def to_dict(self) -> Dict[str, Any]:
        query = self.query.to_dict()
        # Linked queries are templates, they never carry request bookkeeping
        query.pop('uuid', None)
        query.pop('ignoreCache', None)
        return {
            'query': query,
            'blastPropagation': self.blast_propagation.to_dict(),
        }


def linked(
    item_type: str,
    method: QueryMethod,
    query: str,
    scope: str,
    in_: bool = True,
    out: bool = False,
) -> LinkedItemQuery:
    """Shorthand for building a linked item query."""
    return LinkedItemQuery(
        query=Query(type=item_type, method=method, query=query, scope=scope),
        blast_propagation=BlastPropagation(in_=in_, out=out),
    )


@dataclass
class Item:
    """Universal item representation."""
    type: str                 # e.g., 'ec2-vpc'
    unique_attribute: str     # Attribute name holding the identifier (e.g., 'vpcId')
    attributes: Dict[str, Any]
    scope: str

    tags: Dict[str, str] = field(default_factory=dict)
    health: Optional[Health] = None
    linked_item_queries: List[LinkedItemQuery] = field(default_factory=list)

    def unique_attribute_value(self) -> str:
        """Get the value of the unique attribute as a string."""
        try:
            return str(self.attributes[self.unique_attribute])
        except KeyError:
            raise KeyError(
                f"{self.type} item has no unique attribute {self.unique_attribute}"
            )

    def globally_unique_name(self) -> str:
        return f"{self.scope}.{self.type}.{self.unique_attribute_value()}"

    def has_tag(self, key: str, value: str = None) -> bool:
        """Check if item has a specific tag."""
        if value is None:
            return key in self.tags
        return self.tags.get(key) == value

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for publishing."""
        result = {
            'type': self.type,
            'uniqueAttribute': self.unique_attribute,
            'scope': self.scope,
            'attributes': self.attributes,
            'tags': self.tags,
            'linkedItemQueries': [q.to_dict() for q in self.linked_item_queries],
        }
        if self.health is not None:
            result['health'] = self.health.value
        return result


class QueryError(Exception):
    """An error returned in response to a query."""

    def __init__(
        self,
        error_type: ErrorType,
        error_string: str,
        scope: str = "",
        source_name: str = "",
        item_type: str = "",
    ):
        super().__init__(error_string)
        self.error_type = error_type
        self.error_string = error_string
        self.scope = scope
        self.source_name = source_name
        self.item_type = item_type

    def __repr__(self) -> str:
        return f"QueryError({self.error_type.value}, {self.error_string!r})"

    def to_dict(self) -> Dict[str, str]:
        return {
            'errorType': self.error_type.value,
            'errorString': self.error_string,
            'scope': self.scope,
            'sourceName': self.source_name,
            'itemType': self.item_type,
        }
