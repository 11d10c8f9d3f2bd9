"""Selection of configurations, sessions and boot templates for cleanup."""

import logging
from datetime import datetime
from fnmatch import fnmatchcase
from typing import Iterable, List, Optional, Sequence

from csm_connector.models.bos import BootTemplate
from csm_connector.models.cfs import Component, Configuration, Session


logger = logging.getLogger(__name__)


def _matches_pattern(name: Optional[str], pattern: Optional[str]) -> bool:
    if pattern is None:
        return True
    return name is not None and fnmatchcase(name, pattern)


def _targets_in_scope(
    target_groups: Sequence[str],
    target_xnames: Sequence[str],
    group_names: Sequence[str],
    xnames: Iterable[str],
) -> bool:
    """Every targeted group matches a requested group, or every targeted node is in scope."""
    xname_set = set(xnames)
    if target_groups and all(
        any(requested in group for requested in group_names) for group in target_groups
    ):
        return True
    return bool(target_xnames) and all(xname in xname_set for xname in target_xnames)


def filter_templates(
    templates: Sequence[BootTemplate],
    pattern: Optional[str],
    group_names: Sequence[str],
    xnames: Sequence[str],
) -> List[BootTemplate]:
    """Boot templates whose configuration matches ``pattern`` and whose targets are in scope."""
    selected = [t for t in templates if _matches_pattern(t.configuration_name(), pattern)]
    if group_names or xnames:
        selected = [
            t for t in selected
            if _targets_in_scope(t.target_groups(), t.target_xnames(), group_names, xnames)
        ]
    return selected


def filter_sessions(
    sessions: Sequence[Session],
    pattern: Optional[str],
    group_names: Sequence[str],
    xnames: Sequence[str],
    keep_generic_sessions: bool = False,
) -> List[Session]:
    """Sessions whose configuration matches ``pattern`` and whose targets are in scope.

    Generic sessions target neither groups nor nodes; they are only selected
    when ``keep_generic_sessions`` is set.
    """
    selected = [s for s in sessions if _matches_pattern(s.configuration_name(), pattern)]
    if group_names or xnames:
        selected = [
            s for s in selected
            if _targets_in_scope(s.target_groups(), s.target_xnames(), group_names, xnames)
            or (keep_generic_sessions and not s.target_groups() and not s.target_xnames())
        ]
    return selected


def filter_configurations(
    configurations: Sequence[Configuration],
    group_names: Sequence[str],
    templates: Sequence[BootTemplate],
    sessions: Sequence[Session],
    components: Sequence[Component],
    pattern: Optional[str] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    limit: Optional[int] = None,
) -> List[Configuration]:
    """Configurations in scope, oldest first.

    A configuration is in scope when its name contains one of the group names
    or when a selected template, a selected session or a component refers to
    it. The date range ``[since, until)`` only applies when both ends are given.
    """
    referenced = {t.configuration_name() for t in templates}
    referenced.update(s.configuration_name() for s in sessions)
    referenced.update(c.desired_config for c in components if c.desired_config)
    referenced.discard(None)

    selected = [
        c for c in configurations
        if any(group in c.name for group in group_names) or c.name in referenced
    ]

    if since is not None and until is not None:
        selected = [
            c for c in selected
            if c.last_updated_at() is not None and since <= c.last_updated_at() < until
        ]

    selected.sort(key=lambda c: c.last_updated or "")

    if pattern is not None:
        selected = [c for c in selected if fnmatchcase(c.name, pattern)]

    if limit is not None:
        selected = selected[-limit:] if limit > 0 else []

    logger.debug(f"{len(selected)} CFS configurations selected")
    return selected
