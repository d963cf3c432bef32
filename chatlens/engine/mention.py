"""@mention interaction graph.

Counts, per ordered pair of members, how many messages from the first
@-mention the second. Names resolve against current display names and then
against former nicknames.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field

from ..feed.records import MemberRecord, MessageRecord, MessageType, NameHistoryRecord
from .ranking import rank_desc

logger = logging.getLogger(__name__)

MENTION_PATTERN = re.compile(r"@([^\s@]+)")


@dataclass(frozen=True)
class MentionNode:
    id: int
    name: str
    message_count: int
    symbol_size: int


@dataclass(frozen=True)
class MentionLink:
    """Directed mention count from source to target."""
    source_id: int
    target_id: int
    source: str
    target: str
    value: int


@dataclass(frozen=True)
class MentionGraph:
    nodes: list[MentionNode] = field(default_factory=list)
    links: list[MentionLink] = field(default_factory=list)
    max_link_value: int = 0

    @classmethod
    def empty(cls) -> MentionGraph:
        return cls()


class MentionGraphBuilder:
    """Builds the directed @mention graph."""

    def __init__(self, name_history: list[NameHistoryRecord] | None = None):
        """Initialize builder.

        Args:
            name_history: Former nicknames, consulted after current names
        """
        self.name_history = list(name_history or [])

    def resolver(self, members: list[MemberRecord]) -> dict[str, int]:
        """Map every known name onto a member id.

        Current display names win; a former nickname only fills a name that
        is still unclaimed.
        """
        names: dict[str, int] = {}
        for member in members:
            names[member.display_name] = member.id
        for entry in self.name_history:
            names.setdefault(entry.name, entry.member_id)
        return names

    def build(
        self,
        members: list[MemberRecord],
        messages: list[MessageRecord]
    ) -> MentionGraph:
        """Build the mention graph.

        Args:
            members: Member snapshot (system sender excluded)
            messages: Ordered messages; only text containing '@' is read

        Returns:
            MentionGraph; the empty result when nobody mentions anybody
        """
        if not members:
            return MentionGraph.empty()

        names = self.resolver(members)

        # Insertion order of both levels is first-seen order
        matrix: dict[int, dict[int, int]] = {}
        for msg in messages:
            if msg.type != MessageType.TEXT or not msg.content or "@" not in msg.content:
                continue

            mentioned: set[int] = set()
            for match in MENTION_PATTERN.finditer(msg.content):
                target = names.get(match.group(1))
                if target is None or target == msg.sender_id or target in mentioned:
                    continue
                mentioned.add(target)
                row = matrix.setdefault(msg.sender_id, {})
                row[target] = row.get(target, 0) + 1

        if not matrix:
            logger.debug("No resolvable mentions in %d messages", len(messages))
            return MentionGraph.empty()

        return self._assemble(members, matrix)

    def _assemble(
        self,
        members: list[MemberRecord],
        matrix: dict[int, dict[int, int]]
    ) -> MentionGraph:
        directory = {m.id: m for m in members}

        involved: list[int] = []
        for source_id, row in matrix.items():
            for member_id in (source_id, *row):
                if member_id not in involved:
                    involved.append(member_id)

        known = [directory[mid] for mid in involved if mid in directory]
        max_count = max([m.message_count for m in known] + [1])
        nodes = rank_desc(
            [
                MentionNode(
                    id=m.id,
                    name=m.display_name,
                    message_count=m.message_count,
                    symbol_size=int(math.floor(20 + m.message_count / max_count * 40 + 0.5)),
                )
                for m in known
            ],
            key=lambda n: n.message_count,
        )

        links = []
        for source_id, row in matrix.items():
            if source_id not in directory:
                continue
            for target_id, count in row.items():
                if target_id not in directory:
                    continue
                links.append(MentionLink(
                    source_id=source_id,
                    target_id=target_id,
                    source=directory[source_id].display_name,
                    target=directory[target_id].display_name,
                    value=count,
                ))
        links = rank_desc(links, key=lambda link: link.value)

        return MentionGraph(
            nodes=nodes,
            links=links,
            max_link_value=max([link.value for link in links] + [0]),
        )


def build_mention_graph(
    members: list[MemberRecord],
    messages: list[MessageRecord],
    name_history: list[NameHistoryRecord] | None = None
) -> MentionGraph:
    """Convenience function to build the mention graph."""
    return MentionGraphBuilder(name_history).build(members, messages)
