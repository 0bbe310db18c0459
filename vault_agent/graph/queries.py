"""Traversal and aggregation queries over a LinkGraph."""

from collections import Counter, deque
from itertools import combinations

from vault_agent.graph.builder import LinkGraph, same_folder_siblings
from vault_agent.graph.models import Connection, GraphStatistics, NoteInfo, TagRelationship


def get_backlinks(graph: LinkGraph, path: str) -> list[Connection]:
    """Connections in other notes that point at `path`."""
    return list(graph.incoming.get(path, []))


def find_orphaned_notes(graph: LinkGraph, include_folder_structure: bool = False) -> list[NoteInfo]:
    """Notes with no outgoing and no incoming connections.

    With folder structure enabled, a note that shares its folder with
    other notes is not considered orphaned.
    """
    orphans = []
    for path in graph.paths:
        if graph.outgoing_count(path) or graph.incoming_count(path):
            continue
        if include_folder_structure and same_folder_siblings(path, graph.paths):
            continue
        orphans.append(graph.note_info(path))
    return orphans


def find_hub_notes(graph: LinkGraph, min_connections: int = 5) -> list[NoteInfo]:
    """Notes with at least `min_connections` total connections, busiest first."""
    hubs = [graph.note_info(path) for path in graph.paths]
    hubs = [info for info in hubs if info.total_connections >= min_connections]
    hubs.sort(key=lambda info: info.total_connections, reverse=True)
    return hubs


def shortest_path(
    adjacency: dict[str, list[str]], source: str, target: str, max_depth: int = 3
) -> list[str]:
    """Breadth-first search for the shortest link path.

    Args:
        adjacency: Note to neighbour notes, in discovery order
        source: Start note
        target: Destination note
        max_depth: Maximum number of hops

    Returns:
        Path including both ends, [source] when source == target, or an
        empty list when no path exists within max_depth hops

    Examples:
        >>> shortest_path({"A": ["B", "C"], "B": ["C"]}, "A", "C", 2)
        ['A', 'C']
    """
    if source == target:
        return [source]

    visited = {source}
    queue: deque[list[str]] = deque([[source]])
    while queue:
        path = queue.popleft()
        if len(path) - 1 >= max_depth:
            continue
        for neighbour in adjacency.get(path[-1], []):
            if neighbour == target:
                return path + [neighbour]
            if neighbour not in visited:
                visited.add(neighbour)
                queue.append(path + [neighbour])
    return []


def analyze_tag_relationships(graph: LinkGraph) -> tuple[list[TagRelationship], dict[str, int]]:
    """Count tag pairs appearing in the same note, plus notes per tag.

    Pairs are unordered: (a, b) and (b, a) share one counter.

    Returns:
        (relationships sorted by count desc, tag distribution sorted by count desc)
    """
    pair_counts: Counter[tuple[str, str]] = Counter()
    distribution: Counter[str] = Counter()

    for path in graph.paths:
        note_tags = sorted({tag.lower() for tag in graph.tags.get(path, [])})
        distribution.update(note_tags)
        pair_counts.update(combinations(note_tags, 2))

    relationships = [
        TagRelationship(tag_a=a, tag_b=b, count=count)
        for (a, b), count in sorted(pair_counts.items(), key=lambda kv: (-kv[1], kv[0]))
    ]
    return relationships, dict(distribution.most_common())


def vault_statistics(graph: LinkGraph) -> GraphStatistics:
    """Corpus-wide connection statistics from one pass over the graph."""
    total_notes = len(graph.paths)
    total_connections = sum(graph.outgoing_count(p) for p in graph.paths)

    most_connected, best = None, 0
    orphaned = 0
    for path in graph.paths:
        total = graph.outgoing_count(path) + graph.incoming_count(path)
        if total == 0:
            orphaned += 1
        if total > best:
            most_connected, best = path, total

    _, distribution = analyze_tag_relationships(graph)
    return GraphStatistics(
        total_notes=total_notes,
        total_connections=total_connections,
        average_connections=round(total_connections / total_notes, 2) if total_notes else 0.0,
        orphaned_notes=orphaned,
        most_connected_note=most_connected,
        most_connected_count=best,
        tag_distribution=distribution,
    )
