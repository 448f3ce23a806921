"""Collaboration operations on top of the protocol and signer layers.

Services are the top layer of the diamond DAG, depending on
[nostrforge.core][nostrforge.core], [nostrforge.nips][nostrforge.nips],
[nostrforge.signers][nostrforge.signers], [nostrforge.utils][nostrforge.utils]
and [nostrforge.models][nostrforge.models].

```text
references -> AddressResolver -> builders -> mine -> Signer -> RelayPool
```

Attributes:
    SessionContext: Signer, relay pool, resolver and configuration of one
        invocation, passed explicitly.
    AddressResolver: Turns ``naddr``, NIP-05 addresses, event references and
        set names into coordinates, maintainers and relays.
    CollaborationEngine: Announces repositories, opens issues, patches and
        pull requests, replies, changes statuses and lists threads.

Examples:
    ```python
    from nostrforge.core import YamlConfigProvider
    from nostrforge.services import CollaborationEngine, SessionContext

    async with SessionContext.create(YamlConfigProvider.from_yaml()) as context:
        engine = CollaborationEngine(context)
        for issue in await engine.list_issues(["forge"]):
            print(issue.subject, issue.status.label(issue.object_type))
    ```
"""

from .context import SessionContext
from .engine import CollaborationEngine, RepositoryInfo, ThreadView
from .resolver import AddressResolver, Reference, Resolution


__all__ = [
    "AddressResolver",
    "CollaborationEngine",
    "Reference",
    "RepositoryInfo",
    "Resolution",
    "SessionContext",
    "ThreadView",
]
