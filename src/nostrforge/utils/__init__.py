"""Key management, bounded HTTP reads and relay I/O.

The utils layer sits in the middle of the diamond DAG, depending only on
[nostrforge.models][nostrforge.models] and
[nostrforge.core][nostrforge.core]. It provides the network and
cryptographic plumbing used by [nostrforge.nips][nostrforge.nips],
[nostrforge.signers][nostrforge.signers] and
[nostrforge.services][nostrforge.services].

Attributes:
    http: Size-bounded response body reading for aiohttp.
    keys: Secret key loading from environment variables and the OS keyring,
        plus in-process signing.
    protocol: Single-relay operations (connect, send one event, run one
        ``REQ``) built on ``nostr_sdk``.
    transport: [RelayPool][nostrforge.utils.transport.RelayPool], the
        concurrent publish/query fan-out over a relay set.

Note:
    The utils layer has **zero** imports from ``nostrforge.nips``,
    ``nostrforge.signers`` or ``nostrforge.services``.

Examples:
    ```python
    from nostrforge.utils.transport import RelayPool
    from nostrforge.utils.keys import load_keys_from_env
    ```
"""
