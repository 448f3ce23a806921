"""NIP-34 git collaboration: event builders, status rules and parsing.

Attributes:
    builders: Pure functions producing unsigned templates for repository
        announcements, repository state, issues, patch series, pull requests,
        pull request updates and status events.
    status: The status state machine
        ([check_transition()][nostrforge.nips.nip34.status.check_transition])
        and derivation of the current status from status events.
    parsing: Typed interpretation of fetched events.
    patches: ``git format-patch`` header parsing.
"""

from nostrforge.nips.nip34.builders import (
    build_issue,
    build_patch_series,
    build_pull_request,
    build_pull_request_update,
    build_repository_announcement,
    build_repository_state,
    build_status,
)
from nostrforge.nips.nip34.parsing import (
    parse_announcement,
    parse_object,
    parse_state,
    parse_status_change,
    repository_coordinates,
)
from nostrforge.nips.nip34.patches import GitPatch, parse_patch
from nostrforge.nips.nip34.status import (
    check_transition,
    current_status,
    is_revision,
    latest_status_event,
    revision_status,
)


__all__ = [
    "GitPatch",
    "build_issue",
    "build_patch_series",
    "build_pull_request",
    "build_pull_request_update",
    "build_repository_announcement",
    "build_repository_state",
    "build_status",
    "check_transition",
    "current_status",
    "is_revision",
    "latest_status_event",
    "parse_announcement",
    "parse_object",
    "parse_patch",
    "parse_state",
    "parse_status_change",
    "repository_coordinates",
    "revision_status",
]
