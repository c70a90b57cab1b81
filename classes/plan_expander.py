# classes/plan_expander.py
"""
Fan-out expansion and preview building.

expand_fan_out() is the single place that turns a "for every team member"
call into per-member create_requirement arguments; the preview and the
execution engine both go through it, so what the operator confirms is what
runs (given the same team).
"""
import logging
from typing import List, Optional

from classes.agent_models import PreviewEntry, ToolCall
from classes.entity_resolver import normalize_role
from classes.errors import OperationError
from classes.operation_catalog import FAN_OUT_TARGET, OperationCatalog, parse_tool_arguments

logger = logging.getLogger("opsync_agent")


def expand_fan_out(arguments: dict, members: List[dict]) -> List[dict]:
    """
    One create_requirement argument dict per member, in member order.
    Each gets ownerId = member id and name = "<name> - <nick>"; the role filter is dropped.
    """
    base = {k: v for k, v in (arguments or {}).items() if k != "role"}
    out = []
    for member in members:
        args = dict(base)
        args["ownerId"] = member["id"]
        args["name"] = f"{base.get('name') or ''} - {member['nick']}".strip()
        out.append(args)
    return out


def members_for_fan_out(store, role: Optional[str]) -> List[dict]:
    """
    The team members a fan-out call targets right now: all of them, or those
    with the (normalised) role, ordered by nick.
    """
    return store.list_team_members(normalize_role(role))


class PreviewBuilder:
    def __init__(self, catalog: OperationCatalog, store):
        self.catalog = catalog
        self.store = store

    def build(self, tool_calls: List[ToolCall]) -> List[PreviewEntry]:
        entries: List[PreviewEntry] = []
        for call in tool_calls:
            name = call.operation_name
            # reads already ran while reasoning; nothing to confirm
            if self.catalog.is_read_operation(name):
                continue

            try:
                args = parse_tool_arguments(call.raw_arguments)
            except OperationError:
                args = {}

            if self.catalog.is_fan_out_operation(name):
                role = args.get("role") if isinstance(args.get("role"), str) else None
                members = members_for_fan_out(self.store, role)
                for member, member_args in zip(members, expand_fan_out(args, members)):
                    entries.append(
                        PreviewEntry(
                            tool=FAN_OUT_TARGET,
                            arguments=member_args,
                            description=self.catalog.describe(FAN_OUT_TARGET, args, member["nick"]),
                            expanded_from=name,
                        )
                    )
                continue

            entries.append(
                PreviewEntry(
                    tool=name,
                    arguments=args,
                    description=self.catalog.describe(name, args),
                )
            )

        logger.debug(f"Preview: {len(tool_calls)} call(s) -> {len(entries)} entr(ies)")
        return entries
