"""Structured GraphQL query building for batched multi-stream requests.

Queries are assembled as a small tree of field descriptors and rendered by a
single serializer, so the shape of a query can be tested independently of
its text.
"""
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union
from issue_label_watcher.application.watch_plan import WatchPlan, WatchStream
from issue_label_watcher.domain.models import (
    StreamCursor,
    StreamKey,
    StreamKind,
    format_timestamp,
)

INDENT = "  "
MAX_PAGE_SIZE = 100

ISSUE_ORDER = {"field": "UPDATED_AT", "direction": "DESC"}


@dataclass(frozen=True)
class Variable:
    """Reference to a declared query variable."""
    name: str


@dataclass(frozen=True)
class EnumValue:
    """Bare GraphQL enum literal."""
    value: str


@dataclass(frozen=True)
class VariableDefinition:
    name: str
    type_name: str


@dataclass(frozen=True)
class FragmentSpread:
    name: str


@dataclass(frozen=True)
class FieldNode:
    """One selected field with optional alias, arguments and @include guard."""
    name: str
    alias: Optional[str] = None
    arguments: Tuple[Tuple[str, Any], ...] = ()
    include_if: Optional[str] = None
    children: Tuple['Selection', ...] = ()


Selection = Union[FieldNode, FragmentSpread]


@dataclass(frozen=True)
class FragmentDefinition:
    name: str
    type_condition: str
    selections: Tuple[Selection, ...]


@dataclass(frozen=True)
class QueryDocument:
    operation_name: str
    variables: Tuple[VariableDefinition, ...]
    selections: Tuple[Selection, ...]
    fragments: Tuple[FragmentDefinition, ...] = ()


def field(name: str, *children: Selection, alias: Optional[str] = None,
          include_if: Optional[str] = None, arguments: Optional[Dict[str, Any]] = None) -> FieldNode:
    """Shorthand constructor for FieldNode."""
    return FieldNode(
        name=name,
        alias=alias,
        arguments=tuple((arguments or {}).items()),
        include_if=include_if,
        children=tuple(children),
    )


def enum_value(value: Any) -> Any:
    """Wrap the string leaves of a literal as enum values."""
    if isinstance(value, str):
        return EnumValue(value)
    if isinstance(value, (list, tuple)):
        return [enum_value(item) for item in value]
    if isinstance(value, dict):
        return {key: enum_value(item) for key, item in value.items()}
    return value


def render_value(value: Any) -> str:
    """Render an argument value as a GraphQL literal."""
    if isinstance(value, Variable):
        return f"${value.name}"
    if isinstance(value, EnumValue):
        return value.value
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return json.dumps(value)
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(render_value(item) for item in value) + "]"
    if isinstance(value, dict):
        return "{" + ", ".join(f"{key}: {render_value(item)}" for key, item in value.items()) + "}"
    raise TypeError(f"Cannot render {type(value).__name__} as a GraphQL value")


def _render_selection(selection: Selection, depth: int, lines: List[str]) -> None:
    pad = INDENT * depth
    if isinstance(selection, FragmentSpread):
        lines.append(f"{pad}...{selection.name}")
        return

    text = selection.name
    if selection.alias:
        text = f"{selection.alias}: {text}"
    if selection.arguments:
        rendered = ", ".join(f"{key}: {render_value(value)}" for key, value in selection.arguments)
        text = f"{text}({rendered})"
    if selection.include_if:
        text = f"{text} @include(if: ${selection.include_if})"

    if not selection.children:
        lines.append(f"{pad}{text}")
        return

    lines.append(f"{pad}{text} {{")
    for child in selection.children:
        _render_selection(child, depth + 1, lines)
    lines.append(f"{pad}}}")


def render_document(document: QueryDocument) -> str:
    """Serialize a QueryDocument into GraphQL query text."""
    lines: List[str] = []
    header = f"query {document.operation_name}"
    if document.variables:
        declared = ", ".join(f"${v.name}: {v.type_name}" for v in document.variables)
        header = f"{header}({declared})"
    lines.append(f"{header} {{")
    for selection in document.selections:
        _render_selection(selection, 1, lines)
    lines.append("}")

    for fragment in document.fragments:
        lines.append("")
        lines.append(f"fragment {fragment.name} on {fragment.type_condition} {{")
        for selection in fragment.selections:
            _render_selection(selection, 1, lines)
        lines.append("}")
    return "\n".join(lines) + "\n"


def rate_limit_field() -> FieldNode:
    return field(
        "rateLimit",
        field("cost"), field("limit"), field("nodeCount"),
        field("remaining"), field("resetAt"), field("used"),
        arguments={"dryRun": Variable("dryRun")},
    )


def page_info_field() -> FieldNode:
    return field("pageInfo", field("endCursor"), field("hasNextPage"))


def label_names_field(label_page_size: int, after: Optional[str] = None) -> FieldNode:
    arguments: Dict[str, Any] = {"first": label_page_size}
    if after is not None:
        arguments["after"] = after
    return field("labels", field("nodes", field("name")), page_info_field(), arguments=arguments)


def _item_fields(state_alias: str, label_page_size: int) -> Tuple[Selection, ...]:
    return (
        field("number"),
        field("state", alias=state_alias),
        field("title"),
        field("updatedAt"),
        field("url"),
        label_names_field(label_page_size),
    )


def issue_fragments(label_page_size: int) -> Tuple[FragmentDefinition, ...]:
    typename = field("__typename", alias="typeName")
    return (
        FragmentDefinition("issueFields", "Issue", _item_fields("issueState", label_page_size)),
        FragmentDefinition("prFields", "PullRequest", _item_fields("pRState", label_page_size)),
        FragmentDefinition("issueConnectionFields", "IssueConnection", (
            field("nodes", typename, FragmentSpread("issueFields")),
            page_info_field(),
        )),
        FragmentDefinition("pinnedIssueConnectionFields", "PinnedIssueConnection", (
            field("nodes", field("issue", typename, FragmentSpread("issueFields"))),
            page_info_field(),
        )),
        FragmentDefinition("prConnectionFields", "PullRequestConnection", (
            field("nodes", typename, FragmentSpread("prFields")),
            page_info_field(),
        )),
    )


def _paging_arguments(stream: WatchStream) -> Dict[str, Any]:
    return {"first": Variable("pageSize"), "after": Variable(stream.after_variable)}


def stream_field(stream: WatchStream) -> FieldNode:
    """Field descriptor for one stream, aliased and guarded by its include flag."""
    if stream.kind is StreamKind.PINNED:
        return field(
            "pinnedIssues",
            FragmentSpread("pinnedIssueConnectionFields"),
            alias=stream.alias,
            include_if=stream.include_variable,
            arguments=_paging_arguments(stream),
        )

    if stream.kind is StreamKind.ISSUES:
        arguments = {
            "filterBy": {
                "labels": [stream.label],
                "states": enum_value(["OPEN", "CLOSED"]),
                "since": Variable("since"),
            },
            **_paging_arguments(stream),
            "orderBy": enum_value(ISSUE_ORDER),
        }
        return field(
            "issues",
            FragmentSpread("issueConnectionFields"),
            alias=stream.alias,
            include_if=stream.include_variable,
            arguments=arguments,
        )

    if stream.kind is StreamKind.PULL_REQUESTS:
        # Pull requests cannot be filtered by recency; the aggregator cuts the
        # descending list off at the since bound instead.
        arguments = {
            "labels": [stream.label],
            "states": enum_value(["OPEN", "CLOSED", "MERGED"]),
            **_paging_arguments(stream),
            "orderBy": enum_value(ISSUE_ORDER),
        }
        return field(
            "pullRequests",
            FragmentSpread("prConnectionFields"),
            alias=stream.alias,
            include_if=stream.include_variable,
            arguments=arguments,
        )

    return field(
        "labels",
        field("nodes", field("name")),
        page_info_field(),
        alias=stream.alias,
        include_if=stream.include_variable,
        arguments=_paging_arguments(stream),
    )


def repository_field(alias: str, owner: str, name: str, children: Sequence[Selection]) -> FieldNode:
    return field("repository", *children, alias=alias, arguments={"owner": owner, "name": name})


@dataclass(frozen=True)
class ComposedQuery:
    """A rendered batched query plus what is needed to derive its variables."""
    document: QueryDocument
    text: str
    streams: Tuple[WatchStream, ...]
    static_variables: Tuple[Tuple[str, Any], ...] = ()

    def initial_cursors(self) -> Dict[StreamKey, StreamCursor]:
        return {stream.key: StreamCursor() for stream in self.streams}

    def variables(
        self,
        cursors: Mapping[StreamKey, StreamCursor],
        page_size: int,
        dry_run: bool,
    ) -> Dict[str, Any]:
        """Variable object for one round-trip.

        Exhausted streams are switched off through their include flag so the
        query text keeps the same shape for the whole run.
        """
        variables: Dict[str, Any] = {"dryRun": dry_run, "pageSize": page_size}
        variables.update(dict(self.static_variables))
        for stream in self.streams:
            cursor = cursors.get(stream.key, StreamCursor())
            variables[stream.after_variable] = cursor.after
            variables[stream.include_variable] = cursor.include
        return variables


def _stream_variable_definitions(streams: Sequence[WatchStream]) -> List[VariableDefinition]:
    definitions: List[VariableDefinition] = []
    for stream in streams:
        definitions.append(VariableDefinition(stream.after_variable, "String"))
        definitions.append(VariableDefinition(stream.include_variable, "Boolean!"))
    return definitions


def _repository_selections(plan: WatchPlan) -> List[Selection]:
    selections: List[Selection] = []
    for repository, repo_alias in zip(plan.repositories, plan.repository_aliases):
        streams = plan.streams_for(repository)
        if not streams:
            continue
        selections.append(repository_field(
            repo_alias, repository.owner, repository.name,
            [stream_field(stream) for stream in streams],
        ))
    return selections


_CONNECTION_FRAGMENTS = {
    StreamKind.ISSUES: ("issueFields", "issueConnectionFields"),
    StreamKind.PINNED: ("issueFields", "pinnedIssueConnectionFields"),
    StreamKind.PULL_REQUESTS: ("prFields", "prConnectionFields"),
}


def _used_fragments(streams: Sequence[WatchStream], label_page_size: int) -> Tuple[FragmentDefinition, ...]:
    # GraphQL rejects documents that declare fragments they never spread.
    used = set()
    for stream in streams:
        used.update(_CONNECTION_FRAGMENTS.get(stream.kind, ()))
    return tuple(f for f in issue_fragments(label_page_size) if f.name in used)


def compose_issue_query(plan: WatchPlan, since: Optional[datetime], label_page_size: int) -> ComposedQuery:
    """Compose the batched issues/pull requests/pinned query for a watch plan."""
    label_page_size = min(label_page_size, MAX_PAGE_SIZE)
    # Only issue streams filter by $since; an unused variable is rejected.
    uses_since = any(stream.kind is StreamKind.ISSUES for stream in plan.streams)
    variables = [VariableDefinition("dryRun", "Boolean!")]
    static_variables: Tuple[Tuple[str, Any], ...] = ()
    if uses_since:
        variables.append(VariableDefinition("since", "DateTime"))
        static_variables = (("since", format_timestamp(since) if since else None),)
    variables.append(VariableDefinition("pageSize", "Int!"))

    document = QueryDocument(
        operation_name="IssuesWithLabel",
        variables=tuple([*variables, *_stream_variable_definitions(plan.streams)]),
        selections=tuple([rate_limit_field(), *_repository_selections(plan)]),
        fragments=_used_fragments(plan.streams, label_page_size),
    )
    return ComposedQuery(
        document=document,
        text=render_document(document),
        streams=plan.streams,
        static_variables=static_variables,
    )


def compose_label_query(plan: WatchPlan) -> ComposedQuery:
    """Compose the label discovery query (one labels stream per repository)."""
    document = QueryDocument(
        operation_name="Labels",
        variables=tuple([
            VariableDefinition("dryRun", "Boolean!"),
            VariableDefinition("pageSize", "Int!"),
            *_stream_variable_definitions(plan.streams),
        ]),
        selections=tuple([rate_limit_field(), *_repository_selections(plan)]),
    )
    return ComposedQuery(document=document, text=render_document(document), streams=plan.streams)
